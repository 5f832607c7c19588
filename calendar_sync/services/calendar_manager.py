"""
Calendar manager - orchestration of calendar integrations.

Owns the integration lifecycle (connect, disconnect), the bidirectional sync
runs, and the coaching-session event operations. Providers are looked up in
the ProviderRegistry; credentials only exist in plaintext inside a single
operation.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calendar_sync.auth.token_storage import ensure_valid_tokens, store_credentials
from calendar_sync.auth.vault import CredentialVault
from calendar_sync.config import Settings
from calendar_sync.exceptions import (
    AuthError,
    CalendarSyncError,
    EventNotFoundError,
    IntegrationNotFoundError,
    NoCalendarsFound,
    ProviderNotFoundError,
    ProviderPermissionError,
    SyncInProgressError,
    SyncTimeoutError,
    error_code,
)
from calendar_sync.models.base import as_utc, utcnow
from calendar_sync.models.events import (
    CalendarEvent,
    SYNC_STATUS_PENDING,
    SYNC_STATUS_PENDING_DELETE,
    SYNC_STATUS_SYNCED,
)
from calendar_sync.models.integrations import CalendarIntegration
from calendar_sync.models.sync_logs import PHASE_DIFFING, PHASE_FETCHING_EXTERNAL
from calendar_sync.providers.base import (
    CalendarMetadata,
    CalendarProvider,
    Credentials,
    EventInput,
    ExternalEvent,
)
from calendar_sync.providers.registry import ProviderRegistry
from calendar_sync.services import event_store
from calendar_sync.services.sync_lock import acquire_sync_lock, release_sync_lock
from calendar_sync.services.sync_log import (
    fail_stale_sync_logs,
    finalize_sync_log,
    set_phase,
    start_sync_log,
)

logger = logging.getLogger(__name__)

DIRECTION_IMPORT = "import"
DIRECTION_EXPORT = "export"
DIRECTION_BIDIRECTIONAL = "bidirectional"
DIRECTIONS = (DIRECTION_IMPORT, DIRECTION_EXPORT, DIRECTION_BIDIRECTIONAL)


@dataclass
class SyncOptions:
    """Selection and window of a sync_calendars call. Unset filters match all."""

    integration_id: Optional[uuid.UUID] = None
    user_id: Optional[str] = None
    provider: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    direction: str = DIRECTION_BIDIRECTIONAL
    sync_type: str = "incremental"


@dataclass
class SyncError:
    """Structured error recorded on sync logs and results."""

    message: str
    code: str
    event_id: Optional[str] = None

    @classmethod
    def from_exception(cls, error: Exception, event_id: Optional[str] = None) -> "SyncError":
        message = error.message if isinstance(error, CalendarSyncError) else str(error)
        return cls(message=message or type(error).__name__, code=error_code(error), event_id=event_id)

    def to_dict(self) -> dict[str, Any]:
        return {"event_id": self.event_id, "message": self.message, "code": self.code}


@dataclass
class SyncResult:
    """
    Outcome of one integration's sync run.

    success is False when the run failed or any single event failed; the
    counts still reflect the work that was done.
    """

    integration_id: uuid.UUID
    provider: str
    success: bool = False
    events_processed: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_deleted: int = 0
    errors: list[SyncError] = field(default_factory=list)
    unmatched_event_ids: list[str] = field(default_factory=list)
    sync_log_id: Optional[uuid.UUID] = None

    def error_dicts(self) -> list[dict[str, Any]]:
        return [error.to_dict() for error in self.errors]


class CalendarManager:
    """
    Orchestrator for calendar integrations.

    One instance serves the whole process. Every operation opens its own
    session from the factory, so concurrent sync passes never share one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: ProviderRegistry,
        vault: CredentialVault,
        settings: Settings,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._vault = vault
        self._settings = settings
        self._refresh_buffer = timedelta(minutes=settings.token_refresh_buffer_minutes)
        self._run_budget = timedelta(seconds=settings.sync_run_timeout_seconds)
        # Held locks and started logs outlive the watchdog by the grace period
        self._stale_after = self._run_budget + timedelta(seconds=settings.sync_lock_grace_seconds)
        self._refresh_locks: dict[uuid.UUID, asyncio.Lock] = {}

    @property
    def provider_names(self) -> list[str]:
        return self._registry.names()

    # =========================================================================
    # Credentials
    # =========================================================================

    async def _credentials_for(
        self,
        session: AsyncSession,
        integration: CalendarIntegration,
        provider: CalendarProvider,
    ) -> Credentials:
        """
        Get valid credentials, serializing refreshes per integration.

        The row is re-read inside the lock so a refresh committed by a
        concurrent caller is reused instead of spending the refresh token twice.
        """
        lock = self._refresh_locks.setdefault(integration.id, asyncio.Lock())
        async with lock:
            await session.refresh(integration)
            return await ensure_valid_tokens(
                session, integration, provider, self._vault, buffer=self._refresh_buffer
            )

    # =========================================================================
    # Integration lifecycle
    # =========================================================================

    def get_auth_url(
        self,
        user_id: str,
        provider: str,
        redirect_uri: Optional[str] = None,
    ) -> str:
        """
        Get the URL the user visits to grant calendar access.

        Raises:
            UnsupportedProviderError: If the provider is not enabled
        """
        adapter = self._registry.get(provider)
        return adapter.get_auth_url(
            user_id, redirect_uri or self._settings.redirect_uri_for(provider)
        )

    async def connect_calendar(
        self,
        user_id: str,
        provider: str,
        code: str,
        redirect_uri: Optional[str] = None,
        calendar_id: Optional[str] = None,
        calendar_name: Optional[str] = None,
    ) -> CalendarIntegration:
        """
        Connect (or reconnect) a user's calendar.

        Exchanges the authorization code, picks the primary calendar when none
        is given, and upserts the single integration per (user, provider).
        Reconnecting overwrites credentials and calendar, reactivates the
        integration and clears its sync state.

        Raises:
            AuthError: If the provider rejects the code
            ProviderAPIError: If the provider fails
            NoCalendarsFound: If the account has no calendars
        """
        adapter = self._registry.get(provider)
        redirect_uri = redirect_uri or self._settings.redirect_uri_for(provider)

        credentials = await adapter.exchange_code_for_tokens(code, redirect_uri)

        if not calendar_id:
            calendars = await adapter.get_calendars(credentials)
            if not calendars:
                raise NoCalendarsFound(f"No calendars found for {provider} account")
            selected = next((c for c in calendars if c.is_primary), calendars[0])
            calendar_id = selected.id
            calendar_name = calendar_name or selected.name

        async with self._session_factory() as session:
            try:
                integration = await self._upsert_integration(
                    session, user_id, provider, credentials, calendar_id, calendar_name
                )
                await session.commit()
            except IntegrityError:
                # A concurrent connect inserted the row first; update it instead
                await session.rollback()
                integration = await self._upsert_integration(
                    session, user_id, provider, credentials, calendar_id, calendar_name
                )
                await session.commit()

        logger.info(f"Connected {provider} calendar {calendar_id} for user {user_id}")
        return integration

    async def _upsert_integration(
        self,
        session: AsyncSession,
        user_id: str,
        provider: str,
        credentials: Credentials,
        calendar_id: str,
        calendar_name: Optional[str],
    ) -> CalendarIntegration:
        integration = await self._find_integration(session, user_id, provider)
        if integration is None:
            integration = CalendarIntegration(user_id=user_id, provider=provider)
            session.add(integration)

        store_credentials(integration, credentials, self._vault)
        integration.provider_account_id = f"{provider}-{user_id}"
        integration.calendar_id = calendar_id
        integration.calendar_name = calendar_name or calendar_id
        integration.is_active = True
        integration.sync_enabled = True
        integration.last_sync_at = None
        integration.sync_errors = None
        return integration

    async def _find_integration(
        self,
        session: AsyncSession,
        user_id: str,
        provider: str,
    ) -> Optional[CalendarIntegration]:
        stmt = select(CalendarIntegration).where(
            and_(
                CalendarIntegration.user_id == user_id,
                CalendarIntegration.provider == provider,
            )
        )
        return (await session.scalars(stmt)).first()

    async def disconnect_calendar(self, user_id: str, provider: str) -> None:
        """
        Disconnect a calendar and delete everything synced for it.

        Revocation is best-effort; the integration, its events and its sync
        logs are removed regardless.

        Raises:
            IntegrationNotFoundError: If the user has no such integration
        """
        async with self._session_factory() as session:
            integration = await self._find_integration(session, user_id, provider)
            if integration is None:
                raise IntegrationNotFoundError(
                    f"No {provider} calendar integration for user {user_id}"
                )

            try:
                adapter = self._registry.get(provider)
                await adapter.revoke_tokens(self._vault.decrypt_credentials(integration))
            except Exception as e:
                logger.warning(f"Token revocation failed for {provider} integration {integration.id}: {e}")

            integration_id = integration.id
            await session.delete(integration)
            await session.commit()

        self._refresh_locks.pop(integration_id, None)
        logger.info(f"Disconnected {provider} calendar for user {user_id}")

    async def get_user_calendars(
        self,
        user_id: str,
        provider: Optional[str] = None,
    ) -> list[CalendarMetadata]:
        """
        List the calendars of every active integration of a user.

        Integrations that fail (expired credentials, provider outage) are
        logged and skipped.
        """
        calendars: list[CalendarMetadata] = []

        async with self._session_factory() as session:
            integrations = await self._active_integrations(session, user_id, provider)

            for integration in integrations:
                integration_provider = integration.provider
                try:
                    adapter = self._registry.get(integration_provider)
                    credentials = await self._credentials_for(session, integration, adapter)
                    found = await adapter.get_calendars(credentials)
                except CalendarSyncError as e:
                    logger.warning(
                        f"Skipping {integration_provider} calendars for user {user_id}: {e}"
                    )
                    continue

                for calendar in found:
                    calendar.provider = integration_provider
                calendars.extend(found)

        return calendars

    async def _active_integrations(
        self,
        session: AsyncSession,
        user_id: str,
        provider: Optional[str] = None,
    ) -> Sequence[CalendarIntegration]:
        conditions = [
            CalendarIntegration.user_id == user_id,
            CalendarIntegration.is_active.is_(True),
        ]
        if provider:
            conditions.append(CalendarIntegration.provider == provider)

        stmt = select(CalendarIntegration).where(and_(*conditions))
        return (await session.scalars(stmt)).all()

    async def list_integrations(
        self,
        user_id: str,
        provider: Optional[str] = None,
    ) -> Sequence[CalendarIntegration]:
        """List every integration of a user, active or not."""
        conditions = [CalendarIntegration.user_id == user_id]
        if provider:
            conditions.append(CalendarIntegration.provider == provider)

        async with self._session_factory() as session:
            stmt = (
                select(CalendarIntegration)
                .where(and_(*conditions))
                .order_by(CalendarIntegration.created_at)
            )
            return (await session.scalars(stmt)).all()

    async def update_integration_settings(
        self,
        integration_id: uuid.UUID,
        user_id: str,
        sync_enabled: Optional[bool] = None,
        settings: Optional[dict] = None,
    ) -> CalendarIntegration:
        """
        Toggle sync and replace the free-form settings of an integration.

        Raises:
            IntegrationNotFoundError: If the integration does not belong to the user
        """
        async with self._session_factory() as session:
            integration = await session.get(CalendarIntegration, integration_id)
            if integration is None or integration.user_id != user_id:
                raise IntegrationNotFoundError(f"Integration {integration_id} not found")

            if sync_enabled is not None:
                integration.sync_enabled = sync_enabled
            if settings is not None:
                integration.settings = settings

            await session.commit()
            return integration

    async def list_events(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        integration_id: Optional[uuid.UUID] = None,
        is_coaching_session: Optional[bool] = None,
    ) -> Sequence[CalendarEvent]:
        async with self._session_factory() as session:
            return await event_store.list_events_for_user(
                session,
                user_id,
                start=as_utc(start) if start else None,
                end=as_utc(end) if end else None,
                integration_id=integration_id,
                is_coaching_session=is_coaching_session,
            )

    # =========================================================================
    # Sync runs
    # =========================================================================

    async def sync_calendars(self, options: Optional[SyncOptions] = None) -> list[SyncResult]:
        """
        Run a sync pass for every selected integration.

        Only active, sync-enabled integrations are selected. Passes run
        concurrently up to sync_max_concurrency and each one is isolated:
        a failing integration shows up as a failed SyncResult and never
        affects the others.

        Args:
            options: Filters, window and direction (defaults: all integrations,
                now - lookback .. now + lookahead, bidirectional)

        Returns:
            One SyncResult per selected integration
        """
        options = options or SyncOptions()
        if options.direction not in DIRECTIONS:
            raise ValueError(f"Unknown sync direction: {options.direction}")

        now = utcnow()
        start = as_utc(options.start) if options.start else now - timedelta(
            days=self._settings.sync_lookback_days
        )
        end = as_utc(options.end) if options.end else now + timedelta(
            days=self._settings.sync_lookahead_days
        )
        if start >= end:
            raise ValueError("Sync window start must be before its end")

        conditions = [
            CalendarIntegration.is_active.is_(True),
            CalendarIntegration.sync_enabled.is_(True),
        ]
        if options.integration_id:
            conditions.append(CalendarIntegration.id == options.integration_id)
        if options.user_id:
            conditions.append(CalendarIntegration.user_id == options.user_id)
        if options.provider:
            conditions.append(CalendarIntegration.provider == options.provider)

        async with self._session_factory() as session:
            await fail_stale_sync_logs(session, now - self._stale_after)
            stmt = select(CalendarIntegration.id, CalendarIntegration.provider).where(
                and_(*conditions)
            )
            selected = (await session.execute(stmt)).all()

        logger.info(
            f"Syncing {len(selected)} calendar integrations "
            f"({options.direction}, {start.isoformat()} .. {end.isoformat()})"
        )

        semaphore = asyncio.Semaphore(max(1, self._settings.sync_max_concurrency))

        async def run(integration_id: uuid.UUID, provider: str) -> SyncResult:
            async with semaphore:
                return await self._sync_integration(integration_id, provider, start, end, options)

        results = await asyncio.gather(*(run(row.id, row.provider) for row in selected))
        return list(results)

    async def _sync_integration(
        self,
        integration_id: uuid.UUID,
        provider: str,
        start: datetime,
        end: datetime,
        options: SyncOptions,
    ) -> SyncResult:
        """Run one integration's pass under its run lock. Never raises."""
        result = SyncResult(integration_id=integration_id, provider=provider)

        try:
            async with self._session_factory() as session:
                lock_token = await acquire_sync_lock(session, integration_id, self._stale_after)
        except IntegrationNotFoundError as e:
            # Disconnected between selection and locking
            logger.info(f"Skipping sync of integration {integration_id}: {e}")
            result.errors.append(SyncError.from_exception(e))
            return result
        except SQLAlchemyError as e:
            logger.error(f"Could not lock integration {integration_id}: {e}")
            result.errors.append(SyncError.from_exception(e))
            return result

        if lock_token is None:
            result.errors.append(SyncError.from_exception(
                SyncInProgressError(f"Sync already in progress for integration {integration_id}")
            ))
            return result

        try:
            await self._run_locked(result, start, end, options)
        except Exception as e:
            logger.exception(f"Could not record sync run for integration {integration_id}")
            result.success = False
            result.errors.append(SyncError.from_exception(e))
        finally:
            try:
                async with self._session_factory() as session:
                    await release_sync_lock(session, integration_id, lock_token)
            except SQLAlchemyError as e:
                # The lock goes stale and is taken over after the run budget and grace period
                logger.error(f"Could not release sync lock of integration {integration_id}: {e}")

        return result

    async def _run_locked(
        self,
        result: SyncResult,
        start: datetime,
        end: datetime,
        options: SyncOptions,
    ) -> None:
        started_at = utcnow()
        async with self._session_factory() as session:
            result.sync_log_id = await start_sync_log(
                session,
                result.integration_id,
                sync_type=options.sync_type,
                direction=options.direction,
                started_at=started_at,
            )

        failure: Optional[Exception] = None
        try:
            await asyncio.wait_for(
                self._run_pass(result, start, end, options.direction),
                timeout=self._settings.sync_run_timeout_seconds,
            )
        except asyncio.TimeoutError:
            failure = SyncTimeoutError(
                f"Sync run exceeded {self._settings.sync_run_timeout_seconds:g}s"
            )
        except Exception as e:
            failure = e

        if failure is not None:
            logger.error(
                f"Sync failed for {result.provider} integration {result.integration_id}: "
                f"{failure}"
            )
            result.errors.append(SyncError.from_exception(failure))

        errors = result.error_dicts()
        async with self._session_factory() as session:
            await finalize_sync_log(
                session,
                result.sync_log_id,
                started_at,
                succeeded=failure is None,
                events_processed=result.events_processed,
                events_created=result.events_created,
                events_updated=result.events_updated,
                events_deleted=result.events_deleted,
                errors=errors,
            )

            values: dict[str, Any] = {"sync_errors": errors or None}
            if failure is None:
                values["last_sync_at"] = utcnow()
            stmt = (
                update(CalendarIntegration)
                .where(CalendarIntegration.id == result.integration_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()

        result.success = failure is None and not result.errors
        logger.info(
            f"Sync {'completed' if failure is None else 'failed'} for {result.provider} "
            f"integration {result.integration_id}: {result.events_processed} processed, "
            f"{result.events_created} created, {result.events_updated} updated, "
            f"{result.events_deleted} deleted, {len(result.errors)} errors"
        )

    async def _run_pass(
        self,
        result: SyncResult,
        start: datetime,
        end: datetime,
        direction: str,
    ) -> None:
        async with self._session_factory() as session:
            integration = await session.get(CalendarIntegration, result.integration_id)
            if integration is None:
                raise IntegrationNotFoundError(f"Integration {result.integration_id} not found")

            adapter = self._registry.get(integration.provider)
            calendar_id = integration.calendar_id
            credentials = await self._credentials_for(session, integration, adapter)

            if direction in (DIRECTION_EXPORT, DIRECTION_BIDIRECTIONAL):
                await self._export_pending(session, adapter, credentials, calendar_id, result)

            if direction in (DIRECTION_IMPORT, DIRECTION_BIDIRECTIONAL):
                await set_phase(session, result.sync_log_id, PHASE_FETCHING_EXTERNAL)
                external_events = await adapter.get_events(credentials, calendar_id, start, end)

                await set_phase(session, result.sync_log_id, PHASE_DIFFING)
                await self._apply_external(session, external_events, start, end, result)

    async def _export_pending(
        self,
        session: AsyncSession,
        adapter: CalendarProvider,
        credentials: Credentials,
        calendar_id: str,
        result: SyncResult,
    ) -> None:
        """Push local changes (pending updates and deletes) to the provider."""
        pending = await event_store.get_pending_events(session, result.integration_id)
        if not pending:
            return

        if not await adapter.validate_tokens(credentials):
            raise AuthError(
                f"Credentials for integration {result.integration_id} were rejected"
            )

        for item in pending:
            result.events_processed += 1
            try:
                if item.is_delete:
                    await adapter.delete_event(credentials, calendar_id, item.provider_event_id)
                    await event_store.delete_event(session, item.id)
                    result.events_deleted += 1
                else:
                    await adapter.update_event(
                        credentials, calendar_id, item.provider_event_id, item.payload
                    )
                    await event_store.mark_event_synced(session, item.id, utcnow())
                    result.events_updated += 1
            except (CalendarSyncError, SQLAlchemyError) as e:
                await session.rollback()
                error = SyncError.from_exception(e, event_id=item.provider_event_id)
                result.errors.append(error)
                logger.warning(f"Failed to export event {item.provider_event_id}: {error.message}")
                await event_store.record_event_error(
                    session,
                    item.id,
                    error.to_dict(),
                    keep_pending=not isinstance(e, (ProviderNotFoundError, ProviderPermissionError)),
                )

    async def _apply_external(
        self,
        session: AsyncSession,
        external_events: list[ExternalEvent],
        start: datetime,
        end: datetime,
        result: SyncResult,
    ) -> None:
        """
        Reconcile provider events with the store.

        External-only events are created, events on both sides are updated
        unless a local change is pending, and local-only events in the window
        are left untouched and reported as unmatched.
        """
        index = await event_store.get_event_index(session, result.integration_id)
        seen: set[str] = set()
        synced_at = utcnow()

        for external in external_events:
            if external.id in seen:
                continue
            seen.add(external.id)
            result.events_processed += 1

            existing = index.get(external.id)
            try:
                if existing is None:
                    if not external.has_times:
                        logger.debug(f"Skipping cancelled event {external.id} without times")
                        continue
                    index[external.id] = await event_store.insert_external_event(
                        session, result.integration_id, external, synced_at
                    )
                    result.events_created += 1
                elif existing.has_pending_change:
                    logger.debug(f"Keeping pending local change of event {external.id}")
                else:
                    await event_store.update_from_external(session, existing.id, external, synced_at)
                    result.events_updated += 1
            except (CalendarSyncError, SQLAlchemyError) as e:
                await session.rollback()
                error = SyncError.from_exception(e, event_id=external.id)
                result.errors.append(error)
                logger.warning(f"Failed to import event {external.id}: {error.message}")

        result.unmatched_event_ids = sorted(
            provider_event_id
            for provider_event_id, row in index.items()
            if provider_event_id not in seen and row.overlaps(start, end)
        )
        if result.unmatched_event_ids:
            logger.info(
                f"{len(result.unmatched_event_ids)} local events of integration "
                f"{result.integration_id} were not returned by the provider"
            )

    # =========================================================================
    # Coaching-session events
    # =========================================================================

    async def create_coaching_session_event(
        self,
        session_id: str,
        integration_id: uuid.UUID,
        event_data: EventInput,
        user_id: Optional[str] = None,
    ) -> CalendarEvent:
        """
        Create a coaching-session event on the provider, then store it.

        The local row is written only after the provider accepted the event,
        so a failed create leaves nothing behind.

        Args:
            session_id: Coaching session the event belongs to
            integration_id: Integration whose calendar receives the event
            event_data: Title and times are required
            user_id: When given, the integration must belong to this user

        Raises:
            ValueError: If title, start or end is missing
            IntegrationNotFoundError: If the integration is missing or inactive
            AuthError: If the credentials are no longer valid
            ProviderAPIError: If the provider rejects the event
        """
        if not event_data.title or event_data.start is None or event_data.end is None:
            raise ValueError("Coaching session events require a title, start and end")

        async with self._session_factory() as session:
            integration = await session.get(CalendarIntegration, integration_id)
            if (
                integration is None
                or not integration.is_active
                or (user_id is not None and integration.user_id != user_id)
            ):
                raise IntegrationNotFoundError(f"Integration {integration_id} not found")

            adapter = self._registry.get(integration.provider)
            calendar_id = integration.calendar_id
            credentials = await self._credentials_for(session, integration, adapter)

            if not await adapter.validate_tokens(credentials):
                raise AuthError(f"Credentials for integration {integration_id} were rejected")

            external = await adapter.create_event(credentials, calendar_id, event_data)

            event = event_store.build_coaching_event(
                integration_id, session_id, external, event_data, utcnow()
            )
            session.add(event)
            try:
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                logger.error(
                    f"Could not store coaching event {external.id}; removing it from the provider"
                )
                await self._delete_orphan(adapter, credentials, calendar_id, external.id)
                raise

        logger.info(f"Created coaching session event {external.id} for session {session_id}")
        return event

    async def _delete_orphan(
        self,
        adapter: CalendarProvider,
        credentials: Credentials,
        calendar_id: str,
        provider_event_id: str,
    ) -> None:
        try:
            await adapter.delete_event(credentials, calendar_id, provider_event_id)
        except CalendarSyncError as e:
            logger.error(f"Orphaned provider event {provider_event_id} could not be deleted: {e}")

    async def update_coaching_session_event(
        self,
        event_id: uuid.UUID,
        changes: EventInput,
    ) -> CalendarEvent:
        """
        Change a stored event and push the change to the provider.

        The change is committed locally as pending first; if the push fails
        the row stays pending for the next export pass and the error is raised.

        Raises:
            EventNotFoundError: If the event does not exist
        """
        async with self._session_factory() as session:
            event = await session.get(CalendarEvent, event_id)
            if event is None:
                raise EventNotFoundError(f"Calendar event {event_id} not found")

            integration = await session.get(CalendarIntegration, event.integration_id)
            adapter = self._registry.get(integration.provider)
            calendar_id = integration.calendar_id
            provider_event_id = event.provider_event_id

            event_store.apply_event_input(event, changes)
            event.sync_status = SYNC_STATUS_PENDING
            await session.commit()

            try:
                credentials = await self._credentials_for(session, integration, adapter)
                await adapter.update_event(credentials, calendar_id, provider_event_id, changes)
            except CalendarSyncError as e:
                logger.warning(f"Event {provider_event_id} left pending: {e}")
                await event_store.record_event_error(
                    session, event_id, SyncError.from_exception(e, provider_event_id).to_dict()
                )
                raise

            event.sync_status = SYNC_STATUS_SYNCED
            event.sync_errors = None
            event.last_sync_at = utcnow()
            await session.commit()
            return event

    async def cancel_coaching_session_event(self, event_id: uuid.UUID) -> None:
        """
        Delete an event from the provider and the store.

        If the provider call fails the row is kept as pending_delete for the
        next export pass and the error is raised.

        Raises:
            EventNotFoundError: If the event does not exist
        """
        async with self._session_factory() as session:
            event = await session.get(CalendarEvent, event_id)
            if event is None:
                raise EventNotFoundError(f"Calendar event {event_id} not found")

            integration = await session.get(CalendarIntegration, event.integration_id)
            adapter = self._registry.get(integration.provider)
            calendar_id = integration.calendar_id
            provider_event_id = event.provider_event_id

            event.sync_status = SYNC_STATUS_PENDING_DELETE
            await session.commit()

            try:
                credentials = await self._credentials_for(session, integration, adapter)
                await adapter.delete_event(credentials, calendar_id, provider_event_id)
            except CalendarSyncError as e:
                logger.warning(f"Event {provider_event_id} left pending deletion: {e}")
                await event_store.record_event_error(
                    session, event_id, SyncError.from_exception(e, provider_event_id).to_dict()
                )
                raise

            await event_store.delete_event(session, event_id)

        logger.info(f"Cancelled calendar event {provider_event_id}")
