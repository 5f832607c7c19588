"""
iCalendar (RFC 5545) parsing and generation for CalDAV resources.

Uses icalendar for the text format and python-dateutil to expand masters that
still carry an RRULE (servers that ignore <c:expand>).
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from dateutil.rrule import rrulestr
from icalendar import Calendar, Event, vCalAddress, vRecur

from calendar_sync.exceptions import ProviderAPIError
from calendar_sync.providers.base import (
    Attendee,
    EventBoundary,
    EventInput,
    ExternalEvent,
    boundary_to_utc,
)

logger = logging.getLogger(__name__)

PRODID = "-//calendar-sync//Calendar Integration//EN"
OCCURRENCE_ID_FORMAT = "%Y%m%dT%H%M%SZ"
MAX_INSTANCES = 500

PARTSTAT_FROM_ICAL = {
    "ACCEPTED": "accepted",
    "DECLINED": "declined",
    "TENTATIVE": "tentative",
    "NEEDS-ACTION": "needsAction",
}
PARTSTAT_TO_ICAL = {value: key for key, value in PARTSTAT_FROM_ICAL.items()}

CLASS_FROM_ICAL = {
    "PUBLIC": "public",
    "PRIVATE": "private",
    "CONFIDENTIAL": "private",
}
CLASS_TO_ICAL = {
    "public": "PUBLIC",
    "private": "PRIVATE",
}


def format_utc(value: datetime) -> str:
    """Format as an iCalendar UTC timestamp (YYYYMMDDTHHMMSSZ)."""
    return boundary_to_utc(value).strftime(OCCURRENCE_ID_FORMAT)


def occurrence_id(uid: str, start: EventBoundary) -> str:
    """Identifier of one occurrence of a recurring event."""
    return f"{uid}_{format_utc(boundary_to_utc(start))}"


def split_occurrence_id(event_id: str) -> tuple[str, Optional[datetime]]:
    """
    Split an event id into (uid, occurrence start).

    Plain UIDs return (uid, None).
    """
    uid, sep, suffix = event_id.rpartition("_")
    if sep and uid:
        try:
            start = datetime.strptime(suffix, OCCURRENCE_ID_FORMAT).replace(tzinfo=timezone.utc)
            return uid, start
        except ValueError:
            pass
    return event_id, None


def _decoded(component, name: str):
    value = component.get(name)
    if value is None:
        return None
    return component.decoded(name)


def _as_boundary(value) -> Optional[EventBoundary]:
    """Normalize a decoded DTSTART/DTEND; floating times are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return value
    return None


def _text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_attendees(component) -> list[Attendee]:
    raw = component.get("ATTENDEE")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raw = [raw]

    attendees = []
    for address in raw:
        email = str(address)
        if email.lower().startswith("mailto:"):
            email = email[7:]
        if not email:
            continue
        params = getattr(address, "params", {})
        attendees.append(Attendee(
            email=email,
            name=params.get("CN"),
            status=PARTSTAT_FROM_ICAL.get(str(params.get("PARTSTAT", "")).upper()),
        ))
    return attendees


def _rrule_text(component) -> Optional[str]:
    rule = component.get("RRULE")
    if rule is None:
        return None
    if isinstance(rule, list):
        rule = rule[0]
    return rule.to_ical().decode("utf-8")


def event_from_component(component, event_id: str) -> ExternalEvent:
    start = _as_boundary(_decoded(component, "DTSTART"))
    end = _as_boundary(_decoded(component, "DTEND"))

    if start is not None and end is None:
        duration = _decoded(component, "DURATION")
        if duration is not None:
            end = start + duration
        elif isinstance(start, datetime):
            end = start
        else:
            end = start + timedelta(days=1)

    is_all_day = isinstance(start, date) and not isinstance(start, datetime)

    event_timezone = None
    if start is not None and not is_all_day:
        tzid = component["DTSTART"].params.get("TZID")
        event_timezone = str(tzid) if tzid else "UTC"

    status = (_text(component, "STATUS") or "CONFIRMED").lower()
    event_class = _text(component, "CLASS")

    created = _as_boundary(_decoded(component, "CREATED"))
    updated = _as_boundary(_decoded(component, "LAST-MODIFIED"))

    return ExternalEvent(
        id=event_id,
        title=_text(component, "SUMMARY") or "Untitled Event",
        description=_text(component, "DESCRIPTION"),
        start=start,
        end=end,
        timezone=event_timezone,
        is_all_day=is_all_day,
        location=_text(component, "LOCATION"),
        attendees=_parse_attendees(component),
        recurrence_rule=_rrule_text(component),
        status=status if status in ("confirmed", "tentative", "cancelled") else "confirmed",
        visibility=CLASS_FROM_ICAL.get(event_class.upper()) if event_class else None,
        created=created if isinstance(created, datetime) else None,
        updated=updated if isinstance(updated, datetime) else None,
    )


def _exdates(component) -> set[str]:
    raw = component.get("EXDATE")
    if raw is None:
        return set()
    if not isinstance(raw, list):
        raw = [raw]

    excluded = set()
    for exdate in raw:
        for value in exdate.dts:
            excluded.add(format_utc(boundary_to_utc(value.dt)))
    return excluded


def expand_master(
    master: ExternalEvent,
    uid: str,
    window_start: datetime,
    window_end: datetime,
    skip: set[str],
) -> list[ExternalEvent]:
    """
    Expand a recurring master into occurrences overlapping the window.

    Occurrences whose start appears in `skip` (EXDATE or overridden instances)
    are left out. If the rule cannot be parsed the master is returned as is.
    """
    start, end = master.start, master.end
    if start is None or end is None or not master.recurrence_rule:
        return [master]

    all_day = master.is_all_day
    if all_day:
        dtstart = datetime(start.year, start.month, start.day)
        lower = window_start.astimezone(timezone.utc).replace(tzinfo=None)
        upper = window_end.astimezone(timezone.utc).replace(tzinfo=None)
    else:
        # Expand in the event's own zone so DST shifts follow local time
        dtstart = start
        lower, upper = window_start, window_end

    duration = boundary_to_utc(end) - boundary_to_utc(start)

    try:
        rule = rrulestr(master.recurrence_rule, dtstart=dtstart)
        # Include occurrences that started before the window but overlap it
        occurrences = rule.between(lower - duration, upper, inc=True)
    except (ValueError, TypeError, OverflowError) as e:
        logger.warning(f"Could not expand recurrence for {uid}: {e}")
        return [master]

    instances = []
    for occurrence in occurrences[:MAX_INSTANCES]:
        occurrence_start: EventBoundary = occurrence.date() if all_day else occurrence
        instance_id = occurrence_id(uid, occurrence_start)
        if instance_id.rpartition("_")[2] in skip:
            continue

        instances.append(ExternalEvent(
            id=instance_id,
            title=master.title,
            description=master.description,
            start=occurrence_start,
            end=occurrence_start + duration,
            timezone=master.timezone,
            is_all_day=all_day,
            location=master.location,
            attendees=list(master.attendees),
            recurrence_rule=None,
            status=master.status,
            visibility=master.visibility,
            created=master.created,
            updated=master.updated,
        ))

    return instances


def load_calendar(calendar_data: str) -> Calendar:
    """
    Parse iCalendar text.

    Raises:
        ProviderAPIError: If the data is not valid iCalendar
    """
    try:
        return Calendar.from_ical(calendar_data)
    except ValueError as e:
        raise ProviderAPIError(f"Malformed iCalendar data: {e}", original_error=e)


def parse_events(
    calendar_data: str,
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
) -> list[ExternalEvent]:
    """
    Parse every VEVENT in an iCalendar object.

    Instances carrying a RECURRENCE-ID become occurrences with ids of the form
    "{uid}_{YYYYMMDDTHHMMSSZ}". When a window is given, masters with an RRULE
    are expanded client-side.

    Raises:
        ProviderAPIError: If the data is not valid iCalendar
    """
    calendar = load_calendar(calendar_data)
    components = list(calendar.walk("VEVENT"))

    overridden: dict[str, set[str]] = {}
    for component in components:
        recurrence_id = _decoded(component, "RECURRENCE-ID")
        if recurrence_id is not None:
            uid = str(component.get("UID", ""))
            overridden.setdefault(uid, set()).add(format_utc(boundary_to_utc(recurrence_id)))

    events = []
    for component in components:
        uid = str(component.get("UID", "")) or str(uuid.uuid4())
        recurrence_id = _decoded(component, "RECURRENCE-ID")

        if recurrence_id is not None:
            events.append(event_from_component(component, occurrence_id(uid, recurrence_id)))
            continue

        event = event_from_component(component, uid)
        if event.recurrence_rule and window_start and window_end:
            skip = overridden.get(uid, set()) | _exdates(component)
            events.extend(expand_master(event, uid, window_start, window_end, skip))
        else:
            events.append(event)

    return events


def _replace(component, name: str, value, parameters: Optional[dict] = None) -> None:
    """Set a property, removing any previous value first."""
    if name in component:
        del component[name]
    if value is not None:
        component.add(name, value, parameters=parameters)


def _utc(value: EventBoundary, all_day: bool) -> EventBoundary:
    if all_day:
        return value.date() if isinstance(value, datetime) else value
    return boundary_to_utc(value)


def apply_event_input(component, event: EventInput) -> None:
    """Write the fields set on an EventInput onto a VEVENT."""
    all_day = bool(event.is_all_day) or (
        event.start is not None and not isinstance(event.start, datetime)
    )

    if event.title is not None:
        _replace(component, "SUMMARY", event.title)
    if event.description is not None:
        _replace(component, "DESCRIPTION", event.description or None)
    if event.location is not None:
        _replace(component, "LOCATION", event.location or None)
    if event.start is not None:
        _replace(component, "DTSTART", _utc(event.start, all_day))
    if event.end is not None:
        _replace(component, "DTEND", _utc(event.end, all_day))
    if event.status is not None:
        _replace(component, "STATUS", event.status.upper())
    if event.visibility is not None:
        _replace(component, "CLASS", CLASS_TO_ICAL.get(event.visibility))
    if event.recurrence_rule is not None:
        _replace(
            component,
            "RRULE",
            vRecur.from_ical(event.recurrence_rule.removeprefix("RRULE:")) if event.recurrence_rule else None,
        )
    if event.attendees is not None:
        _replace(component, "ATTENDEE", None)
        for attendee in event.attendees:
            address = vCalAddress(f"mailto:{attendee.email}")
            if attendee.name:
                address.params["CN"] = attendee.name
            if attendee.status in PARTSTAT_TO_ICAL:
                address.params["PARTSTAT"] = PARTSTAT_TO_ICAL[attendee.status]
            component.add("ATTENDEE", address, encode=0)

    _replace(component, "DTSTAMP", datetime.now(timezone.utc))
    _replace(component, "LAST-MODIFIED", datetime.now(timezone.utc))


def build_calendar(uid: str, event: EventInput) -> Calendar:
    """Create a VCALENDAR holding one new VEVENT."""
    calendar = Calendar()
    calendar.add("PRODID", PRODID)
    calendar.add("VERSION", "2.0")

    component = Event()
    component.add("UID", uid)
    if event.title is None:
        component.add("SUMMARY", "Untitled Event")
    if event.status is None:
        component.add("STATUS", "CONFIRMED")
    apply_event_input(component, event)

    calendar.add_component(component)
    return calendar


def find_component(calendar: Calendar, uid: str, recurrence_start: Optional[datetime] = None):
    """Find the VEVENT for a UID (and optionally an overridden occurrence)."""
    for component in calendar.walk("VEVENT"):
        if str(component.get("UID", "")) != uid:
            continue
        recurrence_id = _decoded(component, "RECURRENCE-ID")
        if recurrence_start is None and recurrence_id is None:
            return component
        if (
            recurrence_start is not None
            and recurrence_id is not None
            and boundary_to_utc(recurrence_id) == recurrence_start
        ):
            return component
    return None


def add_override(calendar: Calendar, uid: str, recurrence_start: datetime, event: EventInput):
    """Add (or reuse) a RECURRENCE-ID override for one occurrence and apply changes to it."""
    override = find_component(calendar, uid, recurrence_start)
    if override is None:
        master = find_component(calendar, uid)
        if master is None:
            raise ProviderAPIError(f"Event {uid} not found in calendar resource")

        override = Event()
        override.add("UID", uid)
        override.add("RECURRENCE-ID", recurrence_start)
        master_end = _decoded(master, "DTEND")
        master_start = _decoded(master, "DTSTART")
        for name in ("SUMMARY", "DESCRIPTION", "LOCATION", "STATUS", "CLASS"):
            if name in master:
                override.add(name, master[name])
        override.add("DTSTART", recurrence_start)
        if master_end is not None and master_start is not None:
            override.add("DTEND", recurrence_start + (boundary_to_utc(master_end) - boundary_to_utc(master_start)))
        calendar.add_component(override)

    apply_event_input(override, event)
    return override


def add_exdate(calendar: Calendar, uid: str, recurrence_start: datetime) -> None:
    """Exclude one occurrence from a recurring master."""
    master = find_component(calendar, uid)
    if master is None:
        raise ProviderAPIError(f"Event {uid} not found in calendar resource")
    master.add("EXDATE", recurrence_start)

    # Drop any override for the excluded occurrence
    override = find_component(calendar, uid, recurrence_start)
    if override is not None:
        calendar.subcomponents.remove(override)


def to_text(calendar: Calendar) -> str:
    return calendar.to_ical().decode("utf-8")
