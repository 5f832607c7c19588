"""
FastAPI dependency injection providers.

Provides the calendar manager and the calling user's identity.
"""

from typing import Optional
import logging

from fastapi import Header, HTTPException

from calendar_sync.services.calendar_manager import CalendarManager

logger = logging.getLogger(__name__)

# Calendar manager instance (initialized at startup)
_calendar_manager: Optional[CalendarManager] = None


def init_calendar_manager(manager: CalendarManager) -> None:
    """Install the calendar manager at application startup."""
    global _calendar_manager
    _calendar_manager = manager
    logger.info("Calendar manager initialized")


def reset_calendar_manager() -> None:
    global _calendar_manager
    _calendar_manager = None


def get_calendar_manager() -> CalendarManager:
    """
    Dependency injection for the calendar manager.

    Raises:
        HTTPException: If the manager is not initialized
    """
    if _calendar_manager is None:
        logger.error("Calendar manager not initialized")
        raise HTTPException(
            status_code=503,
            detail="Service temporarily unavailable - calendar manager not initialized",
        )
    return _calendar_manager


def get_user_id(
    x_user_id: Optional[str] = Header(None, description="User ID"),
) -> str:
    """
    Extract the calling user from the X-User-ID header.

    Raises:
        HTTPException: If the header is missing
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-ID header is required")
    return x_user_id
