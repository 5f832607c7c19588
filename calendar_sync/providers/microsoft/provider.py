"""
Microsoft (Outlook / Microsoft 365) calendar provider.

Microsoft identity platform v2 for OAuth 2.0 and Microsoft Graph for
calendar data, both over httpx.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from calendar_sync.exceptions import AuthError, ProviderAPIError
from calendar_sync.providers.base import (
    CalendarMetadata,
    Credentials,
    EventInput,
    ExternalEvent,
    sort_key,
)
from calendar_sync.providers.microsoft.adapter import MicrosoftCalendarAdapter
from calendar_sync.providers.microsoft.client import MicrosoftGraphClient
from calendar_sync.providers.oauth import OAuthFlow

logger = logging.getLogger(__name__)

MICROSOFT_LOGIN_URL = "https://login.microsoftonline.com"

CALENDAR_SCOPES = [
    "offline_access",
    "https://graph.microsoft.com/Calendars.ReadWrite",
    "https://graph.microsoft.com/User.Read",
]


def _format_graph_datetime(dt: datetime) -> str:
    """Format a window boundary for calendarView (UTC, ISO 8601)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MicrosoftCalendarProvider:
    """CalendarProvider implementation for Microsoft Graph calendars."""

    name = "microsoft"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        tenant_id: str = "common",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the provider.

        Args:
            client_id: Entra application (client) ID
            client_secret: Entra client secret
            tenant_id: Tenant segment of the identity platform URLs
            timeout: Timeout for every HTTP call
            transport: httpx transport shared by OAuth and Graph calls (tests)
        """
        base = f"{MICROSOFT_LOGIN_URL}/{tenant_id}/oauth2/v2.0"
        self._oauth = OAuthFlow(
            authorize_url=f"{base}/authorize",
            token_url=f"{base}/token",
            client_id=client_id,
            client_secret=client_secret,
            scopes=CALENDAR_SCOPES,
            extra_auth_params={"response_mode": "query", "prompt": "consent"},
            timeout=timeout,
            transport=transport,
        )
        self._timeout = timeout
        self._transport = transport
        self._adapter = MicrosoftCalendarAdapter()

    def _graph(self, credentials: Credentials) -> MicrosoftGraphClient:
        return MicrosoftGraphClient(
            credentials.access_token,
            timeout=self._timeout,
            transport=self._transport,
        )

    def get_auth_url(self, user_id: str, redirect_uri: str) -> str:
        return self._oauth.get_authorization_url(state=user_id, redirect_uri=redirect_uri)

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> Credentials:
        return await self._oauth.exchange_code(code, redirect_uri)

    async def refresh_tokens(self, refresh_token: str) -> Credentials:
        return await self._oauth.refresh_token(refresh_token)

    async def get_calendars(self, credentials: Credentials) -> list[CalendarMetadata]:
        async with self._graph(credentials) as graph:
            entries = await graph.list_calendars()
        return [self._adapter.from_graph_calendar(entry) for entry in entries]

    async def get_events(
        self,
        credentials: Credentials,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ExternalEvent]:
        async with self._graph(credentials) as graph:
            items = await graph.list_calendar_view(
                calendar_id,
                _format_graph_datetime(start),
                _format_graph_datetime(end),
            )

        events = [self._adapter.from_graph_event(item) for item in items]
        events.sort(key=sort_key)

        logger.info(f"Fetched {len(events)} Microsoft events from {calendar_id}")
        return events

    async def create_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        async with self._graph(credentials) as graph:
            result = await graph.create_event(calendar_id, self._adapter.to_graph_event(event))
        return self._adapter.from_graph_event(result)

    async def update_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        async with self._graph(credentials) as graph:
            result = await graph.update_event(
                calendar_id, event_id, self._adapter.to_graph_event(event)
            )
        return self._adapter.from_graph_event(result)

    async def delete_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
    ) -> None:
        async with self._graph(credentials) as graph:
            await graph.delete_event(calendar_id, event_id)

    async def validate_tokens(self, credentials: Credentials) -> bool:
        try:
            async with self._graph(credentials) as graph:
                await graph.get_me()
            return True
        except AuthError:
            return False
        except ProviderAPIError as e:
            logger.warning(f"Microsoft token validation failed: {e}")
            return False

    async def revoke_tokens(self, credentials: Credentials) -> None:
        # Graph has no token revocation endpoint; tokens lapse on expiry
        await self._oauth.revoke(credentials.access_token)
