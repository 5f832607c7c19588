"""
Microsoft Graph calendar provider.
"""

from calendar_sync.providers.microsoft.adapter import MicrosoftCalendarAdapter
from calendar_sync.providers.microsoft.client import MicrosoftGraphClient
from calendar_sync.providers.microsoft.provider import MicrosoftCalendarProvider

__all__ = [
    "MicrosoftCalendarAdapter",
    "MicrosoftGraphClient",
    "MicrosoftCalendarProvider",
]
