"""
Google Calendar provider.

OAuth 2.0 via httpx; calendar data through google-api-python-client, whose
synchronous calls run in a thread pool.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Optional

import httpx

from calendar_sync.exceptions import AuthError, ProviderAPIError
from calendar_sync.providers.base import (
    CalendarMetadata,
    Credentials,
    EventInput,
    ExternalEvent,
    sort_key,
)
from calendar_sync.providers.google.adapter import GoogleCalendarAdapter
from calendar_sync.providers.google.client import GoogleCalendarClient
from calendar_sync.providers.oauth import OAuthFlow

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

# Calendar API scopes
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]


def _format_rfc3339(dt: datetime) -> str:
    """Format datetime to RFC 3339 for Google API."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


class GoogleCalendarProvider:
    """
    CalendarProvider implementation for Google Calendar.

    A new API client is built per call from the caller's access token, so
    no credentials are held between operations.
    """

    name = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        timeout: float = 30.0,
        executor: Optional[ThreadPoolExecutor] = None,
        client_factory: Optional[Callable[[str], GoogleCalendarClient]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the provider.

        Args:
            client_id: Google OAuth client ID
            client_secret: Google OAuth client secret
            timeout: Timeout for every HTTP call
            executor: Thread pool for running sync API calls (creates default if None)
            client_factory: Builds an API client from an access token
            transport: httpx transport for the OAuth endpoints (tests)
        """
        self._oauth = OAuthFlow(
            authorize_url=GOOGLE_AUTH_URL,
            token_url=GOOGLE_TOKEN_URL,
            client_id=client_id,
            client_secret=client_secret,
            scopes=CALENDAR_SCOPES,
            extra_auth_params={
                "access_type": "offline",  # Get refresh token
                "prompt": "consent",  # Always show consent screen (ensures refresh token)
            },
            revoke_url=GOOGLE_REVOKE_URL,
            timeout=timeout,
            transport=transport,
        )
        self._executor = executor or ThreadPoolExecutor(max_workers=4)
        self._client_factory = client_factory or partial(GoogleCalendarClient, timeout=timeout)
        self._adapter = GoogleCalendarAdapter()

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            partial(func, *args, **kwargs),
        )

    async def _call(self, credentials: Credentials, method: str, *args, **kwargs):
        """Build a client for the credentials and run one of its methods."""
        client = self._client_factory(credentials.access_token)
        return await self._run_in_executor(getattr(client, method), *args, **kwargs)

    def get_auth_url(self, user_id: str, redirect_uri: str) -> str:
        return self._oauth.get_authorization_url(state=user_id, redirect_uri=redirect_uri)

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> Credentials:
        return await self._oauth.exchange_code(code, redirect_uri)

    async def refresh_tokens(self, refresh_token: str) -> Credentials:
        return await self._oauth.refresh_token(refresh_token)

    async def get_calendars(self, credentials: Credentials) -> list[CalendarMetadata]:
        entries = await self._call(credentials, "list_all_calendars")
        return [self._adapter.from_google_calendar(entry) for entry in entries]

    async def get_events(
        self,
        credentials: Credentials,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ExternalEvent]:
        items, calendar_timezone = await self._call(
            credentials,
            "list_all_events",
            calendar_id=calendar_id,
            time_min=_format_rfc3339(start),
            time_max=_format_rfc3339(end),
        )

        events = [
            self._adapter.from_google_event(item, default_timezone=calendar_timezone)
            for item in items
        ]
        events.sort(key=sort_key)

        logger.info(f"Fetched {len(events)} Google events from {calendar_id}")
        return events

    async def create_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        body = self._adapter.to_google_event(event)
        result = await self._call(credentials, "insert_event", calendar_id, body)
        return self._adapter.from_google_event(result)

    async def update_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        body = self._adapter.to_google_event(event)
        result = await self._call(credentials, "patch_event", calendar_id, event_id, body)
        return self._adapter.from_google_event(result)

    async def delete_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
    ) -> None:
        await self._call(credentials, "delete_event", calendar_id, event_id)

    async def validate_tokens(self, credentials: Credentials) -> bool:
        try:
            await self._call(credentials, "get_calendar", "primary")
            return True
        except AuthError:
            return False
        except ProviderAPIError as e:
            logger.warning(f"Google token validation failed: {e}")
            return False

    async def revoke_tokens(self, credentials: Credentials) -> None:
        # Revoking the refresh token also invalidates its access tokens
        await self._oauth.revoke(credentials.refresh_token or credentials.access_token)
