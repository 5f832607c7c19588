"""
Apple iCloud calendar provider (CalDAV).

There is no OAuth flow: the user supplies an Apple ID and an app-specific
password, bundled as the "code" passed to connect. The bundle itself is the
access token and never expires.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

import httpx

from calendar_sync.exceptions import AuthError, ProviderAPIError, ProviderNotFoundError
from calendar_sync.providers.apple import dav, ical
from calendar_sync.providers.apple.client import (
    CalDAVClient,
    decode_caldav_credentials,
    encode_caldav_credentials,
)
from calendar_sync.providers.base import (
    CalendarMetadata,
    Credentials,
    EventInput,
    ExternalEvent,
    sort_key,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://caldav.icloud.com"


class AppleCalendarProvider:
    """CalendarProvider implementation for CalDAV servers (iCloud by default)."""

    name = "apple"

    def __init__(
        self,
        default_server_url: str = DEFAULT_SERVER_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._default_server_url = default_server_url
        self._timeout = timeout
        self._transport = transport

    def _client(self, credentials: Credentials) -> CalDAVClient:
        return CalDAVClient(
            decode_caldav_credentials(credentials.access_token),
            default_server_url=self._default_server_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    def get_auth_url(self, user_id: str, redirect_uri: str) -> str:
        # No redirect flow: signal that credentials must be entered manually
        params = urlencode({"provider": "apple", "setup": "manual", "state": user_id})
        return f"{redirect_uri}?{params}"

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> Credentials:
        """
        Validate a bundled CalDAV login against the server.

        Raises:
            AuthError: If the bundle is malformed or the server rejects the login
        """
        account = decode_caldav_credentials(code)
        credentials = Credentials(
            access_token=encode_caldav_credentials(
                account.username, account.password, account.server_url
            ),
        )

        async with self._client(credentials) as client:
            try:
                await client.current_user_principal()
            except AuthError as e:
                raise AuthError("Invalid Apple Calendar credentials", original_error=e)

        logger.info("Validated CalDAV credentials")
        return credentials

    async def refresh_tokens(self, refresh_token: str) -> Credentials:
        # CalDAV logins have no refresh concept
        return Credentials(access_token=refresh_token)

    async def get_calendars(self, credentials: Credentials) -> list[CalendarMetadata]:
        async with self._client(credentials) as client:
            responses = await client.list_calendars()

        calendars = []
        for response in responses:
            calendars.append(CalendarMetadata(
                id=response.href,
                name=response.text("d", "displayname") or response.href.rstrip("/").rsplit("/", 1)[-1],
                description=response.text("c", "calendar-description"),
                timezone=_timezone_id(response.text("c", "calendar-timezone")),
                is_primary=False,
                access_role="owner" if response.can_write else "reader",
                provider="apple",
            ))

        # CalDAV has no primary flag; treat the first writable calendar as primary
        primary = next((c for c in calendars if c.access_role == "owner"), None)
        if primary is not None:
            primary.is_primary = True

        return calendars

    async def get_events(
        self,
        credentials: Credentials,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ExternalEvent]:
        body = dav.calendar_query(ical.format_utc(start), ical.format_utc(end))

        async with self._client(credentials) as client:
            responses = await client.report(client.url(calendar_id), body)

        events: dict[str, ExternalEvent] = {}
        for response in responses:
            calendar_data = response.text("c", "calendar-data")
            if not calendar_data:
                continue
            for event in ical.parse_events(calendar_data, start, end):
                events[event.id] = event

        result = sorted(events.values(), key=sort_key)
        logger.info(f"Fetched {len(result)} CalDAV events from {calendar_id}")
        return result

    async def _locate(self, client: CalDAVClient, calendar_id: str, uid: str) -> str:
        """Find the resource URL holding a UID, defaulting to {calendar}{uid}.ics."""
        try:
            responses = await client.report(client.url(calendar_id), dav.uid_query(uid))
            for response in responses:
                if response.href.endswith(".ics"):
                    return client.url(response.href)
        except ProviderAPIError as e:
            if isinstance(e, ProviderNotFoundError) or e.status_code in (400, 403, 501):
                logger.debug(f"UID lookup unsupported for {calendar_id}: {e}")
            else:
                raise

        return client.url(f"{calendar_id.rstrip('/')}/{uid}.ics")

    async def create_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        uid = str(uuid.uuid4())
        calendar = ical.build_calendar(uid, event)

        async with self._client(credentials) as client:
            url = client.url(f"{calendar_id.rstrip('/')}/{uid}.ics")
            await client.put(url, ical.to_text(calendar), create=True)

        return ical.parse_events(ical.to_text(calendar))[0]

    async def update_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        uid, recurrence_start = ical.split_occurrence_id(event_id)

        async with self._client(credentials) as client:
            url = await self._locate(client, calendar_id, uid)
            existing, etag = await client.get(url)
            calendar = ical.load_calendar(existing)

            if recurrence_start is not None:
                component = ical.add_override(calendar, uid, recurrence_start, event)
            else:
                component = ical.find_component(calendar, uid)
                if component is None:
                    raise ProviderNotFoundError(f"Event {uid} not found in {url}", status_code=404)
                ical.apply_event_input(component, event)

            await client.put(url, ical.to_text(calendar), etag=etag)

        return ical.event_from_component(component, event_id)

    async def delete_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
    ) -> None:
        uid, recurrence_start = ical.split_occurrence_id(event_id)

        async with self._client(credentials) as client:
            url = await self._locate(client, calendar_id, uid)

            if recurrence_start is None:
                await client.delete(url)
                return

            try:
                existing, etag = await client.get(url)
            except ProviderNotFoundError:
                logger.warning(f"Event {event_id} already deleted")
                return
            calendar = ical.load_calendar(existing)
            ical.add_exdate(calendar, uid, recurrence_start)
            await client.put(url, ical.to_text(calendar), etag=etag)

    async def validate_tokens(self, credentials: Credentials) -> bool:
        try:
            async with self._client(credentials) as client:
                await client.current_user_principal()
            return True
        except AuthError:
            return False
        except ProviderAPIError as e:
            logger.warning(f"CalDAV credential validation failed: {e}")
            return False

    async def revoke_tokens(self, credentials: Credentials) -> None:
        # App-specific passwords can only be revoked by the user at appleid.apple.com
        logger.info("CalDAV has no token revocation; skipping")


def _timezone_id(calendar_timezone: Optional[str]) -> str:
    """Extract the TZID from a calendar-timezone VTIMEZONE, defaulting to UTC."""
    if not calendar_timezone:
        return "UTC"
    for line in calendar_timezone.splitlines():
        if line.upper().startswith("TZID:"):
            return line.split(":", 1)[1].strip()
    return "UTC"
