"""
Apple iCloud (CalDAV) calendar provider.
"""

from calendar_sync.providers.apple.client import (
    CalDAVAccount,
    CalDAVClient,
    decode_caldav_credentials,
    encode_caldav_credentials,
)
from calendar_sync.providers.apple.provider import AppleCalendarProvider

__all__ = [
    "AppleCalendarProvider",
    "CalDAVAccount",
    "CalDAVClient",
    "decode_caldav_credentials",
    "encode_caldav_credentials",
]
