"""
Calendar providers.

Each provider implements the CalendarProvider protocol independently; the
registry maps provider names to adapters.
"""

from calendar_sync.providers.base import (
    Attendee,
    CalendarMetadata,
    CalendarProvider,
    Credentials,
    EventInput,
    ExternalEvent,
    PROVIDERS,
    ProviderName,
)
from calendar_sync.providers.registry import ProviderRegistry, build_provider_registry

__all__ = [
    "Attendee",
    "CalendarMetadata",
    "CalendarProvider",
    "Credentials",
    "EventInput",
    "ExternalEvent",
    "PROVIDERS",
    "ProviderName",
    "ProviderRegistry",
    "build_provider_registry",
]
