"""
Store operations for canonical calendar events.

Provides:
- Mapping between provider events and canonical columns
- Idempotent writes keyed by (integration_id, provider_event_id)
- Lightweight index rows used by the sync diff
- Query helpers for the API
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from calendar_sync.models.events import (
    CalendarEvent,
    SYNC_STATUS_ERROR,
    SYNC_STATUS_PENDING,
    SYNC_STATUS_PENDING_DELETE,
    SYNC_STATUS_SYNCED,
)
from calendar_sync.models.integrations import CalendarIntegration
from calendar_sync.providers.base import Attendee, EventInput, ExternalEvent, boundary_to_utc

PENDING_STATUSES = (SYNC_STATUS_PENDING, SYNC_STATUS_PENDING_DELETE)


@dataclass
class IndexedEvent:
    """Column subset of a stored event used while diffing."""

    id: uuid.UUID
    provider_event_id: str
    sync_status: str
    start_time: datetime
    end_time: datetime

    @property
    def has_pending_change(self) -> bool:
        return self.sync_status in PENDING_STATUSES

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and self.end_time > start


@dataclass
class PendingEvent:
    """Detached snapshot of a local change waiting to be pushed."""

    id: uuid.UUID
    provider_event_id: str
    sync_status: str
    payload: EventInput

    @property
    def is_delete(self) -> bool:
        return self.sync_status == SYNC_STATUS_PENDING_DELETE


# =============================================================================
# Mapping
# =============================================================================


def external_event_fields(external: ExternalEvent) -> dict[str, Any]:
    """
    Map a provider event onto canonical descriptive columns.

    Only descriptive fields are produced; session_id, is_coaching_session and
    is_blocked are never taken from external data. Date boundaries become
    midnight UTC with is_all_day set.

    Args:
        external: Normalized provider event

    Returns:
        Column values, without start/end when the event carries no times
    """
    fields: dict[str, Any] = {
        "title": external.title or "(No title)",
        "description": external.description,
        "timezone": external.timezone or "UTC",
        "is_all_day": external.is_all_day,
        "location": external.location,
        "attendees": [attendee.to_dict() for attendee in external.attendees],
        "recurrence_rule": external.recurrence_rule,
        "status": external.status,
        "visibility": external.visibility,
    }

    if external.has_times:
        fields["start_time"] = boundary_to_utc(external.start)
        fields["end_time"] = boundary_to_utc(external.end)

    return fields


def event_to_input(event: CalendarEvent) -> EventInput:
    """Build the provider payload that re-asserts a stored event."""
    if event.is_all_day:
        start = event.start_time.date()
        end = event.end_time.date()
    else:
        start = event.start_time
        end = event.end_time

    return EventInput(
        title=event.title,
        start=start,
        end=end,
        description=event.description,
        timezone=event.timezone,
        is_all_day=event.is_all_day,
        location=event.location,
        attendees=[Attendee.from_dict(a) for a in event.attendees or []],
        recurrence_rule=event.recurrence_rule,
        status=event.status,
        visibility=event.visibility,
    )


def apply_event_input(event: CalendarEvent, changes: EventInput) -> None:
    """Apply the non-None fields of an EventInput onto a stored event."""
    if changes.title is not None:
        event.title = changes.title
    if changes.description is not None:
        event.description = changes.description
    if changes.start is not None:
        event.start_time = boundary_to_utc(changes.start)
    if changes.end is not None:
        event.end_time = boundary_to_utc(changes.end)
    if changes.timezone is not None:
        event.timezone = changes.timezone
    if changes.is_all_day is not None:
        event.is_all_day = changes.is_all_day
    if changes.location is not None:
        event.location = changes.location
    if changes.attendees is not None:
        event.attendees = [attendee.to_dict() for attendee in changes.attendees]
    if changes.recurrence_rule is not None:
        event.recurrence_rule = changes.recurrence_rule
    if changes.status is not None:
        event.status = changes.status
    if changes.visibility is not None:
        event.visibility = changes.visibility


def build_coaching_event(
    integration_id: uuid.UUID,
    session_id: str,
    external: ExternalEvent,
    requested: EventInput,
    synced_at: datetime,
) -> CalendarEvent:
    """
    Build the canonical row for an event created on a provider.

    Falls back to the requested payload for anything the provider did not
    echo back.
    """
    fields = external_event_fields(external)
    if "start_time" not in fields:
        fields["start_time"] = boundary_to_utc(requested.start)
        fields["end_time"] = boundary_to_utc(requested.end)
    if requested.is_all_day is not None and not external.has_times:
        fields["is_all_day"] = requested.is_all_day

    return CalendarEvent(
        integration_id=integration_id,
        provider_event_id=external.id,
        session_id=session_id,
        is_coaching_session=True,
        is_blocked=True,
        last_sync_at=synced_at,
        sync_status=SYNC_STATUS_SYNCED,
        **fields,
    )


# =============================================================================
# Sync writes
# =============================================================================


async def get_event_index(
    session: AsyncSession,
    integration_id: uuid.UUID,
) -> dict[str, IndexedEvent]:
    """
    Get every stored event of an integration keyed by provider event id.

    Returns plain rows rather than ORM instances so a rollback in the diff
    loop does not expire anything still in use.
    """
    stmt = select(
        CalendarEvent.id,
        CalendarEvent.provider_event_id,
        CalendarEvent.sync_status,
        CalendarEvent.start_time,
        CalendarEvent.end_time,
    ).where(CalendarEvent.integration_id == integration_id)

    result = await session.execute(stmt)
    return {
        row.provider_event_id: IndexedEvent(
            id=row.id,
            provider_event_id=row.provider_event_id,
            sync_status=row.sync_status,
            start_time=row.start_time,
            end_time=row.end_time,
        )
        for row in result
    }


async def insert_external_event(
    session: AsyncSession,
    integration_id: uuid.UUID,
    external: ExternalEvent,
    synced_at: datetime,
) -> IndexedEvent:
    """
    Insert an event seen only on the provider and commit.

    External events block availability and are never coaching sessions.
    """
    event = CalendarEvent(
        integration_id=integration_id,
        provider_event_id=external.id,
        is_coaching_session=False,
        is_blocked=True,
        last_sync_at=synced_at,
        sync_status=SYNC_STATUS_SYNCED,
        **external_event_fields(external),
    )
    session.add(event)
    await session.commit()

    return IndexedEvent(
        id=event.id,
        provider_event_id=external.id,
        sync_status=SYNC_STATUS_SYNCED,
        start_time=event.start_time,
        end_time=event.end_time,
    )


async def update_from_external(
    session: AsyncSession,
    event_id: uuid.UUID,
    external: ExternalEvent,
    synced_at: datetime,
) -> None:
    """Overwrite the descriptive fields of a stored event and commit."""
    values = external_event_fields(external)
    if not external.has_times:
        # Cancelled stubs only carry their status
        values = {"status": external.status}

    stmt = (
        update(CalendarEvent)
        .where(CalendarEvent.id == event_id)
        .values(
            **values,
            last_sync_at=synced_at,
            sync_status=SYNC_STATUS_SYNCED,
            sync_errors=None,
        )
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    await session.commit()


async def get_pending_events(
    session: AsyncSession,
    integration_id: uuid.UUID,
) -> list[PendingEvent]:
    """Get detached snapshots of local changes waiting for export."""
    stmt = (
        select(CalendarEvent)
        .where(
            and_(
                CalendarEvent.integration_id == integration_id,
                CalendarEvent.sync_status.in_(PENDING_STATUSES),
            )
        )
        .order_by(CalendarEvent.start_time)
    )
    events = (await session.scalars(stmt)).all()

    return [
        PendingEvent(
            id=event.id,
            provider_event_id=event.provider_event_id,
            sync_status=event.sync_status,
            payload=event_to_input(event),
        )
        for event in events
    ]


async def mark_event_synced(
    session: AsyncSession,
    event_id: uuid.UUID,
    synced_at: datetime,
) -> None:
    stmt = (
        update(CalendarEvent)
        .where(CalendarEvent.id == event_id)
        .values(
            sync_status=SYNC_STATUS_SYNCED,
            sync_errors=None,
            last_sync_at=synced_at,
        )
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    await session.commit()


async def record_event_error(
    session: AsyncSession,
    event_id: uuid.UUID,
    error: dict,
    keep_pending: bool = True,
) -> None:
    """
    Record a failed push on the event row and commit.

    Retryable failures keep the pending status so the next export pass tries
    again; anything else marks the row as errored.
    """
    values: dict[str, Any] = {"sync_errors": [error]}
    if not keep_pending:
        values["sync_status"] = SYNC_STATUS_ERROR

    stmt = (
        update(CalendarEvent)
        .where(CalendarEvent.id == event_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    await session.commit()


async def delete_event(session: AsyncSession, event_id: uuid.UUID) -> None:
    """Hard delete a stored event and commit."""
    stmt = (
        delete(CalendarEvent)
        .where(CalendarEvent.id == event_id)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    await session.commit()


# =============================================================================
# Queries
# =============================================================================


async def list_events_for_user(
    session: AsyncSession,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    integration_id: Optional[uuid.UUID] = None,
    is_coaching_session: Optional[bool] = None,
) -> Sequence[CalendarEvent]:
    """
    Get stored events across a user's integrations.

    Args:
        session: Database session
        user_id: Owner of the integrations
        start: Only events ending after this time
        end: Only events starting before this time
        integration_id: Restrict to one integration
        is_coaching_session: Filter on the coaching-session flag

    Returns:
        Events ordered by start time
    """
    conditions = [CalendarIntegration.user_id == user_id]
    if start is not None:
        conditions.append(CalendarEvent.end_time > start)
    if end is not None:
        conditions.append(CalendarEvent.start_time < end)
    if integration_id is not None:
        conditions.append(CalendarEvent.integration_id == integration_id)
    if is_coaching_session is not None:
        conditions.append(CalendarEvent.is_coaching_session == is_coaching_session)

    stmt = (
        select(CalendarEvent)
        .join(CalendarIntegration, CalendarEvent.integration_id == CalendarIntegration.id)
        .where(and_(*conditions))
        .order_by(CalendarEvent.start_time)
    )
    return (await session.scalars(stmt)).all()
