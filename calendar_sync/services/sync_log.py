"""
Sync log service.

Every sync run writes one CalendarSyncLog row: 'started' at launch, then
finalized exactly once as 'completed' or 'failed'.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from calendar_sync.models.base import utcnow
from calendar_sync.models.sync_logs import (
    CalendarSyncLog,
    PHASE_COMPLETED,
    PHASE_FAILED,
    PHASE_STARTED,
    SYNC_COMPLETED,
    SYNC_FAILED,
    SYNC_STARTED,
)

logger = logging.getLogger(__name__)


def _duration_ms(started_at: datetime, completed_at: datetime) -> int:
    return int((completed_at - started_at).total_seconds() * 1000)


async def start_sync_log(
    session: AsyncSession,
    integration_id: uuid.UUID,
    sync_type: str = "incremental",
    direction: str = "bidirectional",
    started_at: Optional[datetime] = None,
) -> uuid.UUID:
    """
    Write the 'started' row for a run and commit.

    Returns:
        ID of the new sync log
    """
    log = CalendarSyncLog(
        integration_id=integration_id,
        sync_type=sync_type,
        direction=direction,
        status=SYNC_STARTED,
        phase=PHASE_STARTED,
        errors=[],
        started_at=started_at or utcnow(),
    )
    session.add(log)
    await session.commit()
    return log.id


async def set_phase(session: AsyncSession, log_id: uuid.UUID, phase: str) -> None:
    stmt = (
        update(CalendarSyncLog)
        .where(CalendarSyncLog.id == log_id)
        .values(phase=phase)
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)
    await session.commit()


async def finalize_sync_log(
    session: AsyncSession,
    log_id: uuid.UUID,
    started_at: datetime,
    succeeded: bool,
    events_processed: int = 0,
    events_created: int = 0,
    events_updated: int = 0,
    events_deleted: int = 0,
    errors: Optional[list[dict]] = None,
) -> None:
    """
    Finalize a run as 'completed' or 'failed' and commit.

    Only rows still 'started' are touched, so a log is finalized once.

    Args:
        session: Database session
        log_id: Sync log to finalize
        started_at: Run start, used for duration_ms
        succeeded: Whether the run reached the end of its pass
        events_processed: Events examined
        events_created: Local rows created
        events_updated: Local rows updated (or pushed)
        events_deleted: Local rows deleted
        errors: Structured errors [{event_id, message, code}]
    """
    completed_at = utcnow()
    stmt = (
        update(CalendarSyncLog)
        .where(
            and_(
                CalendarSyncLog.id == log_id,
                CalendarSyncLog.status == SYNC_STARTED,
            )
        )
        .values(
            status=SYNC_COMPLETED if succeeded else SYNC_FAILED,
            phase=PHASE_COMPLETED if succeeded else PHASE_FAILED,
            events_processed=events_processed,
            events_created=events_created,
            events_updated=events_updated,
            events_deleted=events_deleted,
            errors=errors or [],
            completed_at=completed_at,
            duration_ms=_duration_ms(started_at, completed_at),
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()

    if result.rowcount == 0:
        logger.warning(f"Sync log {log_id} was already finalized")


async def fail_stale_sync_logs(session: AsyncSession, older_than: datetime) -> int:
    """
    Mark abandoned runs as failed.

    A 'started' row older than the run budget belongs to a process that died
    mid-run; it is finalized as failed so it never stays 'started'.

    Returns:
        Number of logs marked failed
    """
    completed_at = utcnow()
    stmt = (
        update(CalendarSyncLog)
        .where(
            and_(
                CalendarSyncLog.status == SYNC_STARTED,
                CalendarSyncLog.started_at < older_than,
            )
        )
        .values(
            status=SYNC_FAILED,
            phase=PHASE_FAILED,
            completed_at=completed_at,
            errors=[{
                "event_id": None,
                "message": "Sync run was abandoned before completion",
                "code": "sync_abandoned",
            }],
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()

    if result.rowcount:
        logger.warning(f"Marked {result.rowcount} abandoned sync logs as failed")
    return result.rowcount


async def get_sync_logs(
    session: AsyncSession,
    integration_id: uuid.UUID,
    limit: int = 20,
) -> Sequence[CalendarSyncLog]:
    """Get the most recent sync logs of an integration, newest first."""
    stmt = (
        select(CalendarSyncLog)
        .where(CalendarSyncLog.integration_id == integration_id)
        .order_by(CalendarSyncLog.started_at.desc())
        .limit(limit)
    )
    return (await session.scalars(stmt)).all()
