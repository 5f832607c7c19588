"""
Mapping between Microsoft Graph event resources and the canonical vocabulary.

Graph is queried with `Prefer: outlook.timezone="UTC"`, so dateTime values
come back as naive UTC strings.
"""

from datetime import date, datetime, timezone
from typing import Optional

from dateutil.parser import parse as parse_datetime
from dateutil.rrule import weekdays

from calendar_sync.providers.base import (
    Attendee,
    CalendarMetadata,
    EventBoundary,
    EventInput,
    ExternalEvent,
)

RESPONSE_FROM_MICROSOFT = {
    "accepted": "accepted",
    "declined": "declined",
    "tentativelyAccepted": "tentative",
    "organizer": "accepted",
}

SENSITIVITY_FROM_MICROSOFT = {
    "normal": "default",
    "personal": "private",
    "private": "private",
    "confidential": "private",
}

SENSITIVITY_TO_MICROSOFT = {
    "default": "normal",
    "public": "normal",
    "private": "private",
}

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
DAY_CODES = [str(day) for day in weekdays]  # MO, TU, ...

FREQ_FROM_PATTERN = {
    "daily": "DAILY",
    "weekly": "WEEKLY",
    "absoluteMonthly": "MONTHLY",
    "absoluteYearly": "YEARLY",
}

PATTERN_FROM_FREQ = {freq: pattern for pattern, freq in FREQ_FROM_PATTERN.items()}


def pattern_to_rrule(recurrence: Optional[dict]) -> Optional[str]:
    """
    Convert a Graph patternedRecurrence to a single RRULE string.

    Relative monthly/yearly patterns have no single-rule equivalent here and
    return None.
    """
    if not recurrence or not recurrence.get("pattern"):
        return None

    pattern = recurrence["pattern"]
    freq = FREQ_FROM_PATTERN.get(pattern.get("type"))
    if not freq:
        return None

    parts = [f"FREQ={freq}", f"INTERVAL={pattern.get('interval') or 1}"]

    if freq == "WEEKLY" and pattern.get("daysOfWeek"):
        days = [
            DAY_CODES[DAY_NAMES.index(day.lower())]
            for day in pattern["daysOfWeek"]
            if day.lower() in DAY_NAMES
        ]
        if days:
            parts.append(f"BYDAY={','.join(days)}")

    range_ = recurrence.get("range") or {}
    if range_.get("type") == "endDate" and range_.get("endDate"):
        end_date = datetime.strptime(range_["endDate"], "%Y-%m-%d")
        parts.append(f"UNTIL={end_date.strftime('%Y%m%d')}T235959Z")
    elif range_.get("type") == "numbered" and range_.get("numberOfOccurrences"):
        parts.append(f"COUNT={range_['numberOfOccurrences']}")

    return ";".join(parts)


def rrule_to_pattern(rule: str, start: EventBoundary) -> Optional[dict]:
    """Convert a single RRULE string to a Graph patternedRecurrence."""
    fields = dict(
        part.split("=", 1)
        for part in rule.removeprefix("RRULE:").split(";")
        if "=" in part
    )

    pattern_type = PATTERN_FROM_FREQ.get(fields.get("FREQ", "").upper())
    if not pattern_type:
        return None

    start_date = start.date() if isinstance(start, datetime) else start
    pattern: dict = {
        "type": pattern_type,
        "interval": int(fields.get("INTERVAL", 1)),
    }

    if pattern_type == "weekly":
        codes = fields.get("BYDAY", DAY_CODES[start_date.weekday()]).split(",")
        pattern["daysOfWeek"] = [
            DAY_NAMES[DAY_CODES.index(code[-2:])]
            for code in codes
            if code[-2:] in DAY_CODES
        ]
    elif pattern_type == "absoluteMonthly":
        pattern["dayOfMonth"] = start_date.day
    elif pattern_type == "absoluteYearly":
        pattern["dayOfMonth"] = start_date.day
        pattern["month"] = start_date.month

    range_: dict = {"type": "noEnd", "startDate": start_date.isoformat()}
    if "UNTIL" in fields:
        until = parse_datetime(fields["UNTIL"])
        range_ = {
            "type": "endDate",
            "startDate": start_date.isoformat(),
            "endDate": until.date().isoformat(),
        }
    elif "COUNT" in fields:
        range_ = {
            "type": "numbered",
            "startDate": start_date.isoformat(),
            "numberOfOccurrences": int(fields["COUNT"]),
        }

    return {"pattern": pattern, "range": range_}


class MicrosoftCalendarAdapter:
    """Maps between canonical types and Microsoft Graph format."""

    @staticmethod
    def from_graph_calendar(entry: dict) -> CalendarMetadata:
        return CalendarMetadata(
            id=entry["id"],
            name=entry.get("name", entry["id"]),
            timezone=entry.get("timeZone") or "UTC",
            is_primary=bool(entry.get("isDefaultCalendar", False)),
            access_role="owner" if entry.get("canEdit") else "reader",
            provider="microsoft",
        )

    @staticmethod
    def from_graph_event(graph_event: dict) -> ExternalEvent:
        """Convert a Graph event (or occurrence) to an ExternalEvent."""
        is_all_day = bool(graph_event.get("isAllDay", False))
        start_data = graph_event.get("start") or {}
        end_data = graph_event.get("end") or {}

        start: Optional[EventBoundary] = None
        end: Optional[EventBoundary] = None
        event_timezone = None

        if start_data.get("dateTime") and end_data.get("dateTime"):
            if is_all_day:
                start = _parse_date(start_data["dateTime"])
                end = _parse_date(end_data["dateTime"])
            else:
                start = _parse_datetime(start_data["dateTime"])
                end = _parse_datetime(end_data["dateTime"])
                event_timezone = (
                    graph_event.get("originalStartTimeZone")
                    or start_data.get("timeZone")
                    or "UTC"
                )

        if graph_event.get("isCancelled"):
            status = "cancelled"
        elif graph_event.get("showAs") == "tentative":
            status = "tentative"
        else:
            status = "confirmed"

        attendees = []
        for attendee in graph_event.get("attendees") or []:
            address = (attendee.get("emailAddress") or {}).get("address")
            if not address:
                continue
            response = (attendee.get("status") or {}).get("response")
            attendees.append(Attendee(
                email=address,
                name=attendee["emailAddress"].get("name"),
                status=RESPONSE_FROM_MICROSOFT.get(response, "needsAction"),
            ))

        sensitivity = graph_event.get("sensitivity")

        return ExternalEvent(
            id=graph_event["id"],
            title=graph_event.get("subject") or "Untitled Event",
            description=(graph_event.get("body") or {}).get("content") or None,
            start=start,
            end=end,
            timezone=event_timezone,
            is_all_day=is_all_day,
            location=(graph_event.get("location") or {}).get("displayName") or None,
            attendees=attendees,
            recurrence_rule=pattern_to_rrule(graph_event.get("recurrence")),
            status=status,
            visibility=SENSITIVITY_FROM_MICROSOFT.get(sensitivity, "default") if sensitivity else None,
            created=_parse_datetime(graph_event["createdDateTime"]) if graph_event.get("createdDateTime") else None,
            updated=_parse_datetime(graph_event["lastModifiedDateTime"]) if graph_event.get("lastModifiedDateTime") else None,
        )

    @staticmethod
    def to_graph_event(event: EventInput) -> dict:
        """Convert an event payload to Graph format; unset fields are omitted."""
        graph_event: dict = {}

        if event.title is not None:
            graph_event["subject"] = event.title

        if event.description is not None:
            graph_event["body"] = {"contentType": "text", "content": event.description}

        if event.is_all_day is not None:
            graph_event["isAllDay"] = event.is_all_day

        if event.start is not None:
            graph_event["start"] = _format_boundary(event.start, event)

        if event.end is not None:
            graph_event["end"] = _format_boundary(event.end, event)

        if event.location is not None:
            graph_event["location"] = {"displayName": event.location}

        if event.attendees is not None:
            graph_event["attendees"] = [
                {
                    "emailAddress": {"address": attendee.email, "name": attendee.name},
                    "type": "required",
                }
                for attendee in event.attendees
            ]

        if event.status == "tentative":
            graph_event["showAs"] = "tentative"
        elif event.status == "confirmed":
            graph_event["showAs"] = "busy"

        if event.visibility is not None:
            graph_event["sensitivity"] = SENSITIVITY_TO_MICROSOFT.get(event.visibility, "normal")

        if event.recurrence_rule is not None:
            if event.recurrence_rule and event.start is not None:
                graph_event["recurrence"] = rrule_to_pattern(event.recurrence_rule, event.start)
            elif not event.recurrence_rule:
                graph_event["recurrence"] = None

        return graph_event


def _format_boundary(value: EventBoundary, event: EventInput) -> dict:
    """Format a boundary as a Graph dateTimeTimeZone in UTC."""
    if event.is_all_day or not isinstance(value, datetime):
        day = value.date() if isinstance(value, datetime) else value
        return {"dateTime": f"{day.isoformat()}T00:00:00", "timeZone": "UTC"}

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc_value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return {"dateTime": utc_value.isoformat(), "timeZone": "UTC"}


def _parse_datetime(dt_str: str) -> datetime:
    """Parse a Graph dateTime; naive values are UTC because of the Prefer header."""
    dt = parse_datetime(dt_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_date(dt_str: str) -> date:
    """All-day boundaries are floating midnights; keep the calendar date."""
    return parse_datetime(dt_str).date()
