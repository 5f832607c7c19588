"""
ASGI entry point for the calendar sync API.

Re-exports the FastAPI app from calendar_sync/api/main.py, e.g.
`uvicorn calendar_sync.app:app`.
"""

from calendar_sync.api.main import app

__all__ = ["app"]
