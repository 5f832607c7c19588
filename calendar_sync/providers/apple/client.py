"""
CalDAV client over httpx with Basic authentication.

Handles calendar discovery (current-user-principal -> calendar-home-set ->
Depth 1 listing) and the PROPFIND / REPORT / GET / PUT / DELETE calls used for
event access.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

import httpx

from calendar_sync.exceptions import AuthError, ProviderAPIError, ProviderNotFoundError
from calendar_sync.providers.apple import dav
from calendar_sync.providers.http import api_retry, send

logger = logging.getLogger(__name__)

SERVICE = "CalDAV"
XML_CONTENT_TYPE = "application/xml; charset=utf-8"
ICAL_CONTENT_TYPE = "text/calendar; charset=utf-8"


@dataclass
class CalDAVAccount:
    """Login for a CalDAV server. The password is an app-specific password."""

    username: str
    password: str = field(repr=False)
    server_url: Optional[str] = None


def encode_caldav_credentials(
    username: str,
    password: str,
    server_url: Optional[str] = None,
) -> str:
    """Bundle a CalDAV login into the opaque code accepted by connect."""
    payload = {"username": username, "password": password}
    if server_url:
        payload["serverUrl"] = server_url
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_caldav_credentials(token: str) -> CalDAVAccount:
    """
    Unpack a bundled CalDAV login.

    Raises:
        AuthError: If the bundle is malformed or incomplete
    """
    try:
        payload = json.loads(base64.b64decode(token, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise AuthError("Invalid CalDAV credentials format", original_error=e)

    if not isinstance(payload, dict) or not payload.get("username") or not payload.get("password"):
        raise AuthError("CalDAV credentials require a username and an app-specific password")

    return CalDAVAccount(
        username=payload["username"],
        password=payload["password"],
        server_url=payload.get("serverUrl"),
    )


class CalDAVClient:
    """Async CalDAV session for one account."""

    def __init__(
        self,
        account: CalDAVAccount,
        default_server_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server_url = (account.server_url or default_server_url).rstrip("/") + "/"
        self._client = httpx.AsyncClient(
            base_url=self.server_url,
            auth=httpx.BasicAuth(account.username, account.password),
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "CalDAVClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._client.aclose()

    def url(self, href: str) -> str:
        """Resolve an href from a multi-status body against the server URL."""
        return urljoin(self.server_url, href)

    @api_retry
    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await send(self._client, method, url, SERVICE, **kwargs)

    async def propfind(self, url: str, body: str, depth: str = "0") -> list[dav.DavResponse]:
        response = await self._request(
            "PROPFIND",
            url,
            content=body,
            headers={"Depth": depth, "Content-Type": XML_CONTENT_TYPE},
        )
        return dav.parse_multistatus(response.content)

    async def report(self, url: str, body: str, depth: str = "1") -> list[dav.DavResponse]:
        response = await self._request(
            "REPORT",
            url,
            content=body,
            headers={"Depth": depth, "Content-Type": XML_CONTENT_TYPE},
        )
        return dav.parse_multistatus(response.content)

    async def get(self, url: str) -> tuple[str, Optional[str]]:
        """Fetch a calendar object resource; returns (body, etag)."""
        response = await self._request("GET", url)
        return response.text, response.headers.get("ETag")

    async def put(
        self,
        url: str,
        body: str,
        etag: Optional[str] = None,
        create: bool = False,
    ) -> Optional[str]:
        """Store a calendar object resource; returns the new etag if sent."""
        headers = {"Content-Type": ICAL_CONTENT_TYPE}
        if create:
            headers["If-None-Match"] = "*"
        elif etag:
            headers["If-Match"] = etag

        response = await self._request("PUT", url, content=body.encode("utf-8"), headers=headers)
        logger.info(f"Stored CalDAV resource {url}")
        return response.headers.get("ETag")

    async def delete(self, url: str) -> None:
        try:
            await self._request("DELETE", url)
            logger.info(f"Deleted CalDAV resource {url}")
        except ProviderNotFoundError:
            # Already deleted - consider success
            logger.warning(f"CalDAV resource {url} already deleted")

    async def current_user_principal(self) -> str:
        """
        Resolve the principal URL.

        Also serves as the live credential check: a 401 raises AuthError.
        """
        responses = await self.propfind("", dav.PROPFIND_PRINCIPAL, depth="0")
        for response in responses:
            principal = response.href_prop("d", "current-user-principal")
            if principal:
                return principal
        raise ProviderAPIError("CalDAV server did not report a current-user-principal")

    async def calendar_home(self, principal: str) -> str:
        responses = await self.propfind(self.url(principal), dav.PROPFIND_CALENDAR_HOME, depth="0")
        for response in responses:
            home = response.href_prop("c", "calendar-home-set")
            if home:
                return home
        raise ProviderAPIError("CalDAV server did not report a calendar-home-set")

    async def list_calendars(self) -> list[dav.DavResponse]:
        """Discover every VEVENT-capable calendar collection of the account."""
        principal = await self.current_user_principal()
        home = await self.calendar_home(principal)
        home_url = self.url(home)

        responses = await self.propfind(home_url, dav.PROPFIND_CALENDARS, depth="1")
        calendars = [
            response
            for response in responses
            if response.is_calendar and response.supports_events
            and self.url(response.href).rstrip("/") != home_url.rstrip("/")
        ]

        logger.debug(f"Discovered {len(calendars)} CalDAV calendars under {home}")
        return calendars
