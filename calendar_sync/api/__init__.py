"""
Calendar sync API module.

Provides FastAPI HTTP endpoints for calendar integrations.
"""

from calendar_sync.api.main import app, run_server

__all__ = ["app", "run_server"]
