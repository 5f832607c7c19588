"""
Canonical calendar event model.

Events are stored independently of any provider schema and are owned by
exactly one CalendarIntegration.
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calendar_sync.models.base import BaseModel, GUID, UTCDateTime, get_json_type

if TYPE_CHECKING:
    from calendar_sync.models.integrations import CalendarIntegration


# Sync status values
SYNC_STATUS_SYNCED = "synced"
SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_PENDING_DELETE = "pending_delete"
SYNC_STATUS_ERROR = "error"


class CalendarEvent(BaseModel):
    """
    Internally persisted event.

    Key features:
    - (integration_id, provider_event_id) is unique, so every sync write is an upsert
    - session_id / is_coaching_session link the event to the coaching domain and
      are never overwritten by external data
    - is_blocked marks external events that block availability
    """

    __tablename__ = "calendar_events"

    integration_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"),
        nullable=False,
        doc="Integration this event belongs to"
    )

    provider_event_id: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        doc="Event ID on the provider"
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Event title/summary"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Detailed event description"
    )

    # Timing
    start_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Event start (UTC; midnight for all-day events)"
    )

    end_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="Event end (UTC; exclusive midnight for all-day events)"
    )

    timezone: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="UTC",
        doc="IANA timezone the event was scheduled in"
    )

    is_all_day: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether this is an all-day event"
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        doc="Event location"
    )

    attendees: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
        doc="Attendees as [{email, name, status}]"
    )

    recurrence_rule: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        doc="iCalendar RRULE (e.g., 'FREQ=WEEKLY;BYDAY=MO')"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="confirmed",
        doc="Event status: 'confirmed', 'tentative', 'cancelled'"
    )

    visibility: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        default="default",
        doc="Visibility: 'default', 'public', 'private'"
    )

    # Internal linkage
    session_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Coaching session this event was created for"
    )

    is_coaching_session: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether the event was created for a coaching session"
    )

    is_blocked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether the event blocks availability"
    )

    # Sync state
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="When the event was last reconciled with the provider"
    )

    sync_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=SYNC_STATUS_SYNCED,
        doc="'synced', 'pending', 'pending_delete' or 'error'"
    )

    sync_errors: Mapped[Optional[list]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Errors from the last attempt to push this event"
    )

    integration: Mapped["CalendarIntegration"] = relationship(
        "CalendarIntegration",
        back_populates="events",
        doc="Owning integration"
    )

    __table_args__ = (
        UniqueConstraint(
            "integration_id", "provider_event_id",
            name="uq_calendar_event_integration_provider_event",
        ),
        Index("ix_calendar_events_integration", "integration_id"),
        Index("ix_calendar_events_time_range", "integration_id", "start_time", "end_time"),
        Index("ix_calendar_events_session", "session_id"),
        Index("ix_calendar_events_sync_status", "sync_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<CalendarEvent(title='{self.title}', start='{self.start_time}', "
            f"provider_event_id='{self.provider_event_id}')>"
        )
