"""
Unit tests for sync logs and the per-integration run lock.
"""

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, update

from calendar_sync.exceptions import IntegrationNotFoundError
from calendar_sync.models.base import utcnow
from calendar_sync.models.integrations import CalendarIntegration
from calendar_sync.models.sync_logs import (
    CalendarSyncLog,
    PHASE_COMPLETED,
    PHASE_DIFFING,
    PHASE_FAILED,
    SYNC_COMPLETED,
    SYNC_FAILED,
    SYNC_STARTED,
)
from calendar_sync.services.sync_lock import acquire_sync_lock, release_sync_lock
from calendar_sync.services.sync_log import (
    fail_stale_sync_logs,
    finalize_sync_log,
    get_sync_logs,
    set_phase,
    start_sync_log,
)

RUN_BUDGET = timedelta(minutes=10)


@pytest_asyncio.fixture
async def integration_id(db_session):
    integration = CalendarIntegration(
        user_id="user-1",
        provider="google",
        provider_account_id="google-user-1",
        access_token="ciphertext",
        calendar_id="primary",
    )
    db_session.add(integration)
    await db_session.commit()
    return integration.id


async def load_log(session, log_id) -> CalendarSyncLog:
    session.expire_all()
    return (await session.scalars(select(CalendarSyncLog).where(CalendarSyncLog.id == log_id))).one()


class TestSyncLogLifecycle:
    """Test start -> phase -> finalize."""

    @pytest.mark.asyncio
    async def test_completed_run(self, db_session, integration_id):
        """A finalized successful run should record counts and duration."""
        started_at = utcnow()
        log_id = await start_sync_log(
            db_session, integration_id, sync_type="manual", direction="import", started_at=started_at
        )
        assert (await load_log(db_session, log_id)).status == SYNC_STARTED

        await set_phase(db_session, log_id, PHASE_DIFFING)
        assert (await load_log(db_session, log_id)).phase == PHASE_DIFFING

        await finalize_sync_log(
            db_session,
            log_id,
            started_at,
            succeeded=True,
            events_processed=3,
            events_created=2,
            events_updated=1,
        )

        log = await load_log(db_session, log_id)
        assert log.status == SYNC_COMPLETED
        assert log.phase == PHASE_COMPLETED
        assert log.sync_type == "manual"
        assert log.direction == "import"
        assert (log.events_processed, log.events_created, log.events_updated) == (3, 2, 1)
        assert log.completed_at is not None
        assert log.duration_ms >= 0
        assert log.errors == []

    @pytest.mark.asyncio
    async def test_finalized_once(self, db_session, integration_id):
        """A second finalize should not overwrite the first."""
        started_at = utcnow()
        log_id = await start_sync_log(db_session, integration_id, started_at=started_at)
        errors = [{"event_id": None, "message": "boom", "code": "provider_api_error"}]

        await finalize_sync_log(db_session, log_id, started_at, succeeded=False, errors=errors)
        await finalize_sync_log(db_session, log_id, started_at, succeeded=True)

        log = await load_log(db_session, log_id)
        assert log.status == SYNC_FAILED
        assert log.phase == PHASE_FAILED
        assert log.errors == errors

    @pytest.mark.asyncio
    async def test_stale_logs_marked_failed(self, db_session, integration_id):
        """'started' logs older than the cutoff should be marked abandoned."""
        now = utcnow()
        stale = await start_sync_log(db_session, integration_id, started_at=now - timedelta(hours=1))
        fresh = await start_sync_log(db_session, integration_id, started_at=now)

        marked = await fail_stale_sync_logs(db_session, now - RUN_BUDGET)

        assert marked == 1
        stale_log = await load_log(db_session, stale)
        assert stale_log.status == SYNC_FAILED
        assert stale_log.errors[0]["code"] == "sync_abandoned"
        assert (await load_log(db_session, fresh)).status == SYNC_STARTED

    @pytest.mark.asyncio
    async def test_get_sync_logs_newest_first(self, db_session, integration_id):
        """Logs should be returned newest first and limited."""
        now = utcnow()
        ids = [
            await start_sync_log(db_session, integration_id, started_at=now - timedelta(minutes=m))
            for m in (30, 20, 10)
        ]

        logs = await get_sync_logs(db_session, integration_id, limit=2)

        assert [log.id for log in logs] == [ids[2], ids[1]]


class TestSyncLock:
    """Test acquire_sync_lock() / release_sync_lock()."""

    @pytest.mark.asyncio
    async def test_lock_is_exclusive(self, db_session, integration_id):
        """A held lock should not be acquired twice."""
        token = await acquire_sync_lock(db_session, integration_id, RUN_BUDGET)
        assert token is not None
        assert await acquire_sync_lock(db_session, integration_id, RUN_BUDGET) is None

        assert await release_sync_lock(db_session, integration_id, token) is True

        assert await acquire_sync_lock(db_session, integration_id, RUN_BUDGET) is not None

    @pytest.mark.asyncio
    async def test_stale_lock_taken_over(self, db_session, integration_id):
        """A lock older than the stale age should be taken over."""
        integration = await db_session.get(CalendarIntegration, integration_id)
        integration.sync_in_progress = True
        integration.sync_lock_acquired_at = utcnow() - timedelta(hours=1)
        await db_session.commit()

        assert await acquire_sync_lock(db_session, integration_id, RUN_BUDGET) is not None

    @pytest.mark.asyncio
    async def test_superseded_run_cannot_release(self, db_session, integration_id):
        """A run whose lock was taken over should not free the new holder's lock."""
        first_token = await acquire_sync_lock(db_session, integration_id, RUN_BUDGET)
        await db_session.execute(
            update(CalendarIntegration)
            .where(CalendarIntegration.id == integration_id)
            .values(sync_lock_acquired_at=first_token - timedelta(minutes=11))
        )
        await db_session.commit()
        second_token = await acquire_sync_lock(db_session, integration_id, RUN_BUDGET)
        assert second_token is not None

        assert await release_sync_lock(db_session, integration_id, first_token) is False

        assert await acquire_sync_lock(db_session, integration_id, RUN_BUDGET) is None
        assert await release_sync_lock(db_session, integration_id, second_token) is True

    @pytest.mark.asyncio
    async def test_unknown_integration(self, db_session):
        """Locking an unknown integration should raise IntegrationNotFoundError."""
        with pytest.raises(IntegrationNotFoundError):
            await acquire_sync_lock(db_session, uuid.uuid4(), RUN_BUDGET)
