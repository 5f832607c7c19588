"""
Provider registry.

An explicit provider-name -> adapter map built once at startup and passed
into CalendarManager.
"""

import logging
from typing import Iterator, Mapping, Optional

import httpx

from calendar_sync.config import Settings
from calendar_sync.exceptions import UnsupportedProviderError
from calendar_sync.providers.apple import AppleCalendarProvider
from calendar_sync.providers.base import CalendarProvider
from calendar_sync.providers.google import GoogleCalendarProvider
from calendar_sync.providers.microsoft import MicrosoftCalendarProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Read-only lookup of calendar providers by name."""

    def __init__(self, providers: Mapping[str, CalendarProvider]):
        self._providers = dict(providers)

    def get(self, name: str) -> CalendarProvider:
        """
        Get the adapter for a provider.

        Raises:
            UnsupportedProviderError: If no adapter is registered under the name
        """
        try:
            return self._providers[name]
        except KeyError:
            raise UnsupportedProviderError(f"Calendar provider '{name}' is not enabled")

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)


def build_provider_registry(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderRegistry:
    """
    Build the registry for every enabled provider.

    Raises:
        ConfigurationError: If an enabled provider is missing its configuration
    """
    settings.validate_provider_config()

    providers: dict[str, CalendarProvider] = {}
    timeout = settings.http_timeout_seconds

    if "google" in settings.enabled_providers:
        providers["google"] = GoogleCalendarProvider(
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
            timeout=timeout,
            transport=transport,
        )

    if "microsoft" in settings.enabled_providers:
        providers["microsoft"] = MicrosoftCalendarProvider(
            client_id=settings.microsoft_client_id,
            client_secret=settings.microsoft_client_secret,
            tenant_id=settings.microsoft_tenant_id,
            timeout=timeout,
            transport=transport,
        )

    if "apple" in settings.enabled_providers:
        providers["apple"] = AppleCalendarProvider(
            default_server_url=settings.caldav_default_server_url,
            timeout=timeout,
            transport=transport,
        )

    logger.info(f"Registered calendar providers: {', '.join(providers) or 'none'}")
    return ProviderRegistry(providers)
