"""
Unit tests for WebDAV multi-status parsing and CalDAV credential bundles.
"""

import pytest

from calendar_sync.exceptions import AuthError, ProviderAPIError
from calendar_sync.providers.apple import dav
from calendar_sync.providers.apple.client import (
    decode_caldav_credentials,
    encode_caldav_credentials,
)

CALENDAR_HOME_LISTING = """<?xml version="1.0" encoding="utf-8"?>
<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:response>
    <d:href>/123/calendars/</d:href>
    <d:propstat>
      <d:prop><d:resourcetype><d:collection/></d:resourcetype></d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/123/calendars/work%20stuff/</d:href>
    <d:propstat>
      <d:prop>
        <d:displayname>Work</d:displayname>
        <d:resourcetype><d:collection/><c:calendar/></d:resourcetype>
        <d:current-user-privilege-set>
          <d:privilege><d:read/></d:privilege>
          <d:privilege><d:write/></d:privilege>
        </d:current-user-privilege-set>
        <c:supported-calendar-component-set><c:comp name="VEVENT"/></c:supported-calendar-component-set>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
    <d:propstat>
      <d:prop><c:calendar-description/></d:prop>
      <d:status>HTTP/1.1 404 Not Found</d:status>
    </d:propstat>
  </d:response>
  <d:response>
    <d:href>/123/calendars/tasks/</d:href>
    <d:propstat>
      <d:prop>
        <d:resourcetype><d:collection/><c:calendar/></d:resourcetype>
        <d:current-user-privilege-set><d:privilege><d:read/></d:privilege></d:current-user-privilege-set>
        <c:supported-calendar-component-set><c:comp name="VTODO"/></c:supported-calendar-component-set>
      </d:prop>
      <d:status>HTTP/1.1 200 OK</d:status>
    </d:propstat>
  </d:response>
</d:multistatus>"""


class TestParseMultistatus:
    """Test parse_multistatus()."""

    def test_parses_responses(self):
        """Every response should be returned with decoded hrefs."""
        responses = dav.parse_multistatus(CALENDAR_HOME_LISTING)

        assert [r.href for r in responses] == [
            "/123/calendars/",
            "/123/calendars/work stuff/",
            "/123/calendars/tasks/",
        ]

    def test_calendar_properties(self):
        """Calendar flags and privileges should be read from 2xx propstats."""
        home, work, tasks = dav.parse_multistatus(CALENDAR_HOME_LISTING)

        assert home.is_calendar is False
        assert work.is_calendar is True
        assert work.text("d", "displayname") == "Work"
        assert work.can_write is True
        assert work.supports_events is True
        assert tasks.can_write is False
        assert tasks.supports_events is False

    def test_failed_propstat_ignored(self):
        """Properties under a 404 propstat should not be kept."""
        _, work, _ = dav.parse_multistatus(CALENDAR_HOME_LISTING)

        assert work.prop("c", "calendar-description") is None

    def test_href_property(self):
        """Nested hrefs such as current-user-principal should be extracted."""
        body = """<d:multistatus xmlns:d="DAV:">
          <d:response>
            <d:href>/</d:href>
            <d:propstat>
              <d:prop><d:current-user-principal><d:href>/123/principal/</d:href></d:current-user-principal></d:prop>
              <d:status>HTTP/1.1 200 OK</d:status>
            </d:propstat>
          </d:response>
        </d:multistatus>"""

        [response] = dav.parse_multistatus(body)

        assert response.href_prop("d", "current-user-principal") == "/123/principal/"

    def test_malformed_xml(self):
        """Malformed bodies should raise ProviderAPIError."""
        with pytest.raises(ProviderAPIError):
            dav.parse_multistatus("<d:multistatus")


class TestRequestBodies:
    """Test REPORT bodies."""

    def test_calendar_query_window(self):
        """calendar-query should expand and filter on the window."""
        body = dav.calendar_query("20260301T000000Z", "20260401T000000Z")

        assert '<c:expand start="20260301T000000Z" end="20260401T000000Z"/>' in body
        assert '<c:time-range start="20260301T000000Z" end="20260401T000000Z"/>' in body

    def test_uid_query_escapes(self):
        """UIDs should be XML-escaped."""
        assert "a&amp;b" in dav.uid_query("a&b")


class TestCredentialBundle:
    """Test CalDAV credential bundles."""

    def test_roundtrip(self):
        """Encoded bundles should decode to the same account."""
        token = encode_caldav_credentials("me@icloud.com", "abcd-efgh", "https://dav.example.com")

        account = decode_caldav_credentials(token)

        assert account.username == "me@icloud.com"
        assert account.password == "abcd-efgh"
        assert account.server_url == "https://dav.example.com"
        assert "abcd" not in repr(account)

    @pytest.mark.parametrize("token", ["not base64!", "e30=", "eyJ1c2VybmFtZSI6ICJ4In0="])
    def test_invalid_bundle(self, token):
        """Malformed or incomplete bundles should raise AuthError."""
        with pytest.raises(AuthError):
            decode_caldav_credentials(token)
