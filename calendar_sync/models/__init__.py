"""
SQLAlchemy models for the calendar sync engine.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

# Import base classes
from calendar_sync.models.base import Base, BaseModel, GUID, UTCDateTime, get_json_type

# Import all models (must be imported for Alembic autogenerate)
from calendar_sync.models.integrations import CalendarIntegration
from calendar_sync.models.events import CalendarEvent
from calendar_sync.models.sync_logs import CalendarSyncLog

# Export all for easy importing
__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "UTCDateTime",
    "get_json_type",
    # Integration models
    "CalendarIntegration",
    "CalendarEvent",
    "CalendarSyncLog",
]
