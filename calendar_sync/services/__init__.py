"""
Service layer for the calendar sync engine.

Provides:
- CalendarManager: integration lifecycle, sync runs, coaching-session events
- Event store helpers (idempotent writes keyed by provider event id)
- Sync logs and the per-integration run lock
"""

from calendar_sync.services.calendar_manager import (
    CalendarManager,
    DIRECTION_BIDIRECTIONAL,
    DIRECTION_EXPORT,
    DIRECTION_IMPORT,
    SyncError,
    SyncOptions,
    SyncResult,
)
from calendar_sync.services.sync_lock import acquire_sync_lock, release_sync_lock
from calendar_sync.services.sync_log import (
    fail_stale_sync_logs,
    finalize_sync_log,
    get_sync_logs,
    set_phase,
    start_sync_log,
)

__all__ = [
    # Orchestration
    "CalendarManager",
    "SyncError",
    "SyncOptions",
    "SyncResult",
    "DIRECTION_BIDIRECTIONAL",
    "DIRECTION_EXPORT",
    "DIRECTION_IMPORT",
    # Run lock
    "acquire_sync_lock",
    "release_sync_lock",
    # Sync logs
    "fail_stale_sync_logs",
    "finalize_sync_log",
    "get_sync_logs",
    "set_phase",
    "start_sync_log",
]
