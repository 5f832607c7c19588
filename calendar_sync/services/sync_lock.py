"""
Per-integration run lock.

Stored on the integration row: a conditional UPDATE flips sync_in_progress,
so across processes at most one run holds an integration at a time. A lock
older than stale_after belongs to a dead run and may be taken over.

The acquisition time doubles as the ownership token: release only clears
the lock while it still carries the caller's token, so a run that lost its
lock to a takeover cannot free the new holder's lock.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from calendar_sync.exceptions import IntegrationNotFoundError
from calendar_sync.models.base import utcnow
from calendar_sync.models.integrations import CalendarIntegration

logger = logging.getLogger(__name__)


async def acquire_sync_lock(
    session: AsyncSession,
    integration_id: uuid.UUID,
    stale_after: timedelta,
) -> Optional[datetime]:
    """
    Try to take the run lock of an integration.

    Args:
        session: Database session
        integration_id: Integration to lock
        stale_after: Age after which a held lock may be taken over

    Returns:
        The lock token to pass to release_sync_lock, or None if another
        run holds the lock

    Raises:
        IntegrationNotFoundError: If the integration no longer exists
    """
    now = utcnow()
    stmt = (
        update(CalendarIntegration)
        .where(
            and_(
                CalendarIntegration.id == integration_id,
                or_(
                    CalendarIntegration.sync_in_progress.is_(False),
                    CalendarIntegration.sync_lock_acquired_at.is_(None),
                    CalendarIntegration.sync_lock_acquired_at < now - stale_after,
                ),
            )
        )
        .values(sync_in_progress=True, sync_lock_acquired_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()

    if result.rowcount == 1:
        return now

    exists = await session.scalar(
        select(CalendarIntegration.id).where(CalendarIntegration.id == integration_id)
    )
    if exists is None:
        raise IntegrationNotFoundError(f"Calendar integration {integration_id} no longer exists")

    logger.info(f"Sync already in progress for integration {integration_id}")
    return None


async def release_sync_lock(
    session: AsyncSession,
    integration_id: uuid.UUID,
    token: datetime,
) -> bool:
    """
    Release a run lock held under the given token.

    Returns:
        False if the lock had been taken over by another run and was left alone
    """
    stmt = (
        update(CalendarIntegration)
        .where(
            and_(
                CalendarIntegration.id == integration_id,
                CalendarIntegration.sync_in_progress.is_(True),
                CalendarIntegration.sync_lock_acquired_at == token,
            )
        )
        .values(sync_in_progress=False, sync_lock_acquired_at=None)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()

    released = result.rowcount == 1
    if not released:
        logger.warning(
            f"Sync lock of integration {integration_id} was taken over; leaving it to its new holder"
        )
    return released
