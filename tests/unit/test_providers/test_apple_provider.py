"""
Unit tests for AppleCalendarProvider against a mocked CalDAV server.
"""

import base64
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from calendar_sync.exceptions import AuthError
from calendar_sync.providers.apple.client import (
    decode_caldav_credentials,
    encode_caldav_credentials,
)
from calendar_sync.providers.apple.provider import AppleCalendarProvider
from calendar_sync.providers.base import Credentials, EventInput

SERVER = "https://caldav.example.com"

PRINCIPAL = """<d:multistatus xmlns:d="DAV:">
  <d:response><d:href>/</d:href><d:propstat>
    <d:prop><d:current-user-principal><d:href>/123/principal/</d:href></d:current-user-principal></d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
</d:multistatus>"""

HOME = """<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:response><d:href>/123/principal/</d:href><d:propstat>
    <d:prop><c:calendar-home-set><d:href>/123/calendars/</d:href></c:calendar-home-set></d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
</d:multistatus>"""

CALENDARS = """<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:response><d:href>/123/calendars/</d:href><d:propstat>
    <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
  <d:response><d:href>/123/calendars/shared/</d:href><d:propstat>
    <d:prop>
      <d:displayname>Shared</d:displayname>
      <d:resourcetype><d:collection/><c:calendar/></d:resourcetype>
      <d:current-user-privilege-set><d:privilege><d:read/></d:privilege></d:current-user-privilege-set>
    </d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
  <d:response><d:href>/123/calendars/home/</d:href><d:propstat>
    <d:prop>
      <d:displayname>Home</d:displayname>
      <d:resourcetype><d:collection/><c:calendar/></d:resourcetype>
      <d:current-user-privilege-set><d:privilege><d:all/></d:privilege></d:current-user-privilege-set>
      <c:calendar-timezone>BEGIN:VCALENDAR
BEGIN:VTIMEZONE
TZID:America/Los_Angeles
END:VTIMEZONE
END:VCALENDAR</c:calendar-timezone>
    </d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
</d:multistatus>"""

EVENT_ICS = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example//EN
BEGIN:VEVENT
UID:evt-1
SUMMARY:Yoga
DTSTART:20260315T170000Z
DTEND:20260315T180000Z
END:VEVENT
END:VCALENDAR
"""

EVENTS_REPORT = f"""<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:response><d:href>/123/calendars/home/evt-1.ics</d:href><d:propstat>
    <d:prop><d:getetag>"etag-1"</d:getetag><c:calendar-data>{EVENT_ICS}</c:calendar-data></d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
</d:multistatus>"""

UID_REPORT = """<d:multistatus xmlns:d="DAV:">
  <d:response><d:href>/123/calendars/home/stored-name.ics</d:href><d:propstat>
    <d:prop><d:getetag>"etag-1"</d:getetag></d:prop>
    <d:status>HTTP/1.1 200 OK</d:status>
  </d:propstat></d:response>
</d:multistatus>"""


class FakeCalDAVServer:
    """Routes CalDAV requests by method and path, recording every request."""

    def __init__(self, password: str = "app-password"):
        self.password = password
        self.requests: list[httpx.Request] = []
        self.stored: dict[str, str] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        login = base64.b64encode(f"me@icloud.com:{self.password}".encode()).decode()
        auth_header = f"Basic {login}"
        if request.headers.get("Authorization") != auth_header:
            return httpx.Response(401)

        path = request.url.path
        body = request.content.decode() if request.content else ""

        if request.method == "PROPFIND":
            if path == "/":
                return httpx.Response(207, text=PRINCIPAL)
            if path == "/123/principal/":
                return httpx.Response(207, text=HOME)
            if path == "/123/calendars/":
                return httpx.Response(207, text=CALENDARS)
        if request.method == "REPORT":
            if "prop-filter" in body:
                return httpx.Response(207, text=UID_REPORT)
            return httpx.Response(207, text=EVENTS_REPORT)
        if request.method == "GET":
            return httpx.Response(200, text=EVENT_ICS, headers={"ETag": '"etag-1"'})
        if request.method == "PUT":
            self.stored[path] = body
            return httpx.Response(201, headers={"ETag": '"etag-2"'})
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(404)


@pytest.fixture
def server():
    return FakeCalDAVServer()


@pytest.fixture
def provider(server):
    return AppleCalendarProvider(default_server_url=SERVER, transport=httpx.MockTransport(server))


@pytest.fixture
def credentials():
    return Credentials(access_token=encode_caldav_credentials("me@icloud.com", "app-password"))


class TestConnect:
    """Test credential validation."""

    def test_auth_url_signals_manual_setup(self, provider):
        """The auth URL should point back to the app for manual entry."""
        url = provider.get_auth_url("user-1", "https://app.example.com/cb/apple")
        params = parse_qs(urlparse(url).query)

        assert url.startswith("https://app.example.com/cb/apple?")
        assert params["setup"] == ["manual"]
        assert params["state"] == ["user-1"]

    @pytest.mark.asyncio
    async def test_exchange_validates_login(self, provider, credentials):
        """A valid login should be returned as a non-expiring credential bundle."""
        result = await provider.exchange_code_for_tokens(credentials.access_token, "unused")

        account = decode_caldav_credentials(result.access_token)
        assert account.username == "me@icloud.com"
        assert result.expires_at is None
        assert result.refresh_token is None

    @pytest.mark.asyncio
    async def test_exchange_rejected_login(self, provider):
        """A rejected password should raise AuthError."""
        code = encode_caldav_credentials("me@icloud.com", "wrong")

        with pytest.raises(AuthError):
            await provider.exchange_code_for_tokens(code, "unused")

    @pytest.mark.asyncio
    async def test_validate_tokens(self, provider, credentials):
        """validate_tokens should reflect whether the login works."""
        bad = Credentials(access_token=encode_caldav_credentials("me@icloud.com", "wrong"))

        assert await provider.validate_tokens(credentials) is True
        assert await provider.validate_tokens(bad) is False


class TestGetCalendars:
    """Test calendar discovery."""

    @pytest.mark.asyncio
    async def test_discovers_calendars(self, provider, credentials):
        """Discovery should skip the home collection and pick a writable primary."""
        calendars = await provider.get_calendars(credentials)

        assert [c.id for c in calendars] == ["/123/calendars/shared/", "/123/calendars/home/"]
        shared, home = calendars
        assert shared.access_role == "reader"
        assert shared.is_primary is False
        assert home.is_primary is True
        assert home.timezone == "America/Los_Angeles"
        assert home.provider == "apple"


class TestEvents:
    """Test event access."""

    @pytest.mark.asyncio
    async def test_get_events(self, provider, credentials, server):
        """calendar-query results should be parsed into events."""
        events = await provider.get_events(
            credentials,
            "/123/calendars/home/",
            datetime(2026, 3, 1, tzinfo=timezone.utc),
            datetime(2026, 4, 1, tzinfo=timezone.utc),
        )

        assert [e.id for e in events] == ["evt-1"]
        assert events[0].title == "Yoga"
        report = server.requests[-1]
        assert report.method == "REPORT"
        assert report.headers["Depth"] == "1"
        assert "20260301T000000Z" in report.content.decode()

    @pytest.mark.asyncio
    async def test_create_event(self, provider, credentials, server):
        """New events should be PUT with If-None-Match under a fresh UID."""
        created = await provider.create_event(credentials, "/123/calendars/home/", EventInput(
            title="Session",
            start=datetime(2026, 3, 20, 10, tzinfo=timezone.utc),
            end=datetime(2026, 3, 20, 11, tzinfo=timezone.utc),
        ))

        put = server.requests[-1]
        assert put.method == "PUT"
        assert put.headers["If-None-Match"] == "*"
        assert put.url.path == f"/123/calendars/home/{created.id}.ics"
        assert created.title == "Session"

    @pytest.mark.asyncio
    async def test_update_event_uses_located_resource(self, provider, credentials, server):
        """Updates should locate the resource by UID and PUT with If-Match."""
        updated = await provider.update_event(
            credentials, "/123/calendars/home/", "evt-1", EventInput(title="Hot yoga")
        )

        put = server.requests[-1]
        assert put.method == "PUT"
        assert put.url.path == "/123/calendars/home/stored-name.ics"
        assert put.headers["If-Match"] == '"etag-1"'
        assert "SUMMARY:Hot yoga" in server.stored["/123/calendars/home/stored-name.ics"]
        assert updated.title == "Hot yoga"

    @pytest.mark.asyncio
    async def test_delete_event(self, provider, credentials, server):
        """Deleting a plain event should DELETE its resource."""
        await provider.delete_event(credentials, "/123/calendars/home/", "evt-1")

        delete = server.requests[-1]
        assert delete.method == "DELETE"
        assert delete.url.path == "/123/calendars/home/stored-name.ics"

    @pytest.mark.asyncio
    async def test_revoke_is_noop(self, provider, credentials, server):
        """CalDAV revocation should make no request."""
        await provider.revoke_tokens(credentials)

        assert server.requests == []
