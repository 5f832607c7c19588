"""
WebDAV / CalDAV request bodies and multi-status parsing (RFC 4918, RFC 4791).
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import unquote
from xml.sax.saxutils import escape

from calendar_sync.exceptions import ProviderAPIError

logger = logging.getLogger(__name__)

NAMESPACES = {
    "d": "DAV:",
    "c": "urn:ietf:params:xml:ns:caldav",
    "cs": "http://calendarserver.org/ns/",
    "ic": "http://apple.com/ns/ical/",
}

for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)


def tag(prefix: str, name: str) -> str:
    """Clark notation for a namespaced element, e.g. {DAV:}href."""
    return f"{{{NAMESPACES[prefix]}}}{name}"


PROPFIND_PRINCIPAL = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:current-user-principal />
  </d:prop>
</d:propfind>"""

PROPFIND_CALENDAR_HOME = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <c:calendar-home-set />
  </d:prop>
</d:propfind>"""

PROPFIND_CALENDARS = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav"
            xmlns:cs="http://calendarserver.org/ns/" xmlns:ic="http://apple.com/ns/ical/">
  <d:prop>
    <d:displayname />
    <d:resourcetype />
    <d:current-user-privilege-set />
    <c:calendar-description />
    <c:calendar-timezone />
    <c:supported-calendar-component-set />
    <ic:calendar-order />
    <cs:getctag />
  </d:prop>
</d:propfind>"""


def calendar_query(start: str, end: str) -> str:
    """
    calendar-query REPORT for VEVENTs overlapping [start, end).

    The server expands recurring events into instances inside the window.
    """
    return f"""<?xml version="1.0" encoding="utf-8" ?>
<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:getetag />
    <c:calendar-data>
      <c:expand start="{start}" end="{end}"/>
    </c:calendar-data>
  </d:prop>
  <c:filter>
    <c:comp-filter name="VCALENDAR">
      <c:comp-filter name="VEVENT">
        <c:time-range start="{start}" end="{end}"/>
      </c:comp-filter>
    </c:comp-filter>
  </c:filter>
</c:calendar-query>"""


def uid_query(uid: str) -> str:
    """calendar-query REPORT locating the resource that holds a UID."""
    return f"""<?xml version="1.0" encoding="utf-8" ?>
<c:calendar-query xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:getetag />
  </d:prop>
  <c:filter>
    <c:comp-filter name="VCALENDAR">
      <c:comp-filter name="VEVENT">
        <c:prop-filter name="UID">
          <c:text-match collation="i;octet">{escape(uid)}</c:text-match>
        </c:prop-filter>
      </c:comp-filter>
    </c:comp-filter>
  </c:filter>
</c:calendar-query>"""


@dataclass
class DavResponse:
    """One <d:response> of a multi-status body, keeping only 2xx properties."""

    href: str
    props: dict[str, ET.Element] = field(default_factory=dict)

    def prop(self, prefix: str, name: str) -> Optional[ET.Element]:
        return self.props.get(tag(prefix, name))

    def text(self, prefix: str, name: str) -> Optional[str]:
        element = self.prop(prefix, name)
        if element is None or element.text is None:
            return None
        return element.text.strip() or None

    def href_prop(self, prefix: str, name: str) -> Optional[str]:
        """Text of the <d:href> nested in a property such as calendar-home-set."""
        element = self.prop(prefix, name)
        if element is None:
            return None
        href = element.find("d:href", NAMESPACES)
        if href is None or not href.text:
            return None
        return href.text.strip()

    @property
    def etag(self) -> Optional[str]:
        return self.text("d", "getetag")

    @property
    def is_calendar(self) -> bool:
        resource_type = self.prop("d", "resourcetype")
        return (
            resource_type is not None
            and resource_type.find("c:calendar", NAMESPACES) is not None
        )

    @property
    def supports_events(self) -> bool:
        """True unless the collection declares a component set without VEVENT."""
        component_set = self.prop("c", "supported-calendar-component-set")
        if component_set is None:
            return True
        names = {comp.get("name", "").upper() for comp in component_set.findall("c:comp", NAMESPACES)}
        return not names or "VEVENT" in names

    @property
    def can_write(self) -> bool:
        privileges = self.prop("d", "current-user-privilege-set")
        if privileges is None:
            return True
        for privilege in privileges.findall("d:privilege", NAMESPACES):
            if privilege.find("d:write", NAMESPACES) is not None or privilege.find("d:all", NAMESPACES) is not None:
                return True
        return False


def _status_ok(status_text: Optional[str]) -> bool:
    if not status_text:
        return True
    parts = status_text.split()
    return len(parts) >= 2 and parts[1].startswith("2")


def parse_multistatus(body: str) -> list[DavResponse]:
    """
    Parse a 207 Multi-Status body.

    Raises:
        ProviderAPIError: If the body is not well-formed XML
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ProviderAPIError(f"Malformed CalDAV multi-status response: {e}", original_error=e)

    responses = []
    for response in root.findall("d:response", NAMESPACES):
        href_el = response.find("d:href", NAMESPACES)
        if href_el is None or not href_el.text:
            continue

        dav_response = DavResponse(href=unquote(href_el.text.strip()))
        for propstat in response.findall("d:propstat", NAMESPACES):
            if not _status_ok(propstat.findtext("d:status", default=None, namespaces=NAMESPACES)):
                continue
            prop = propstat.find("d:prop", NAMESPACES)
            if prop is None:
                continue
            for child in prop:
                dav_response.props[child.tag] = child

        responses.append(dav_response)

    logger.debug(f"Parsed {len(responses)} multi-status responses")
    return responses
