"""
Google Calendar provider.

Provides OAuth 2.0 connection and bidirectional event access for Google
Calendar through the Calendar API v3.
"""

from calendar_sync.providers.google.adapter import GoogleCalendarAdapter
from calendar_sync.providers.google.client import GoogleCalendarClient
from calendar_sync.providers.google.provider import GoogleCalendarProvider

__all__ = [
    "GoogleCalendarAdapter",
    "GoogleCalendarClient",
    "GoogleCalendarProvider",
]
