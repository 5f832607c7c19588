"""
Mapping between Google Calendar API resources and the canonical vocabulary.

Handles:
- DateTime formatting (RFC 3339 for Google API)
- All-day event handling (date-only boundaries)
- Recurrence rule mapping (single RRULE, no prefix internally)
- Attendee and visibility mapping
"""

from datetime import date, datetime, timezone
from typing import Optional

from dateutil.parser import parse as parse_datetime

from calendar_sync.providers.base import (
    Attendee,
    CalendarMetadata,
    EventBoundary,
    EventInput,
    ExternalEvent,
)

# Google uses 'confidential' as a legacy alias of 'private'
VISIBILITY_FROM_GOOGLE = {
    "default": "default",
    "public": "public",
    "private": "private",
    "confidential": "private",
}


class GoogleCalendarAdapter:
    """Maps between canonical types and Google Calendar API format."""

    @staticmethod
    def from_google_calendar(entry: dict) -> CalendarMetadata:
        """Convert a calendarList entry."""
        return CalendarMetadata(
            id=entry["id"],
            name=entry.get("summaryOverride") or entry.get("summary", entry["id"]),
            description=entry.get("description"),
            timezone=entry.get("timeZone", "UTC"),
            is_primary=bool(entry.get("primary", False)),
            access_role=entry.get("accessRole", "reader"),
            provider="google",
        )

    @staticmethod
    def from_google_event(
        google_event: dict,
        default_timezone: Optional[str] = None,
    ) -> ExternalEvent:
        """
        Convert Google Calendar event to an ExternalEvent.

        Args:
            google_event: Event from Google Calendar API
            default_timezone: Calendar time zone, used when the event has none

        Returns:
            ExternalEvent (start/end are None for cancelled stubs without times)
        """
        start_data = google_event.get("start", {})
        end_data = google_event.get("end", {})

        start: Optional[EventBoundary] = None
        end: Optional[EventBoundary] = None
        event_timezone = None
        is_all_day = False

        if "dateTime" in start_data:
            start = _parse_datetime(start_data["dateTime"])
            end = _parse_datetime(end_data["dateTime"]) if "dateTime" in end_data else start
            event_timezone = start_data.get("timeZone") or default_timezone or "UTC"
        elif "date" in start_data:
            start = _parse_date(start_data["date"])
            end = _parse_date(end_data["date"]) if "date" in end_data else start
            is_all_day = True

        attendees = [
            Attendee(
                email=attendee["email"],
                name=attendee.get("displayName"),
                status=attendee.get("responseStatus"),
            )
            for attendee in google_event.get("attendees", [])
            if attendee.get("email")
        ]

        recurrence_rule = None
        for rule in google_event.get("recurrence", []):
            if rule.startswith("RRULE:"):
                recurrence_rule = rule[6:]  # Strip "RRULE:" prefix
                break

        visibility = google_event.get("visibility")

        return ExternalEvent(
            id=google_event.get("id", ""),
            title=google_event.get("summary", "Untitled"),
            description=google_event.get("description"),
            start=start,
            end=end,
            timezone=event_timezone,
            is_all_day=is_all_day,
            location=google_event.get("location"),
            attendees=attendees,
            recurrence_rule=recurrence_rule,
            status=google_event.get("status", "confirmed"),
            visibility=VISIBILITY_FROM_GOOGLE.get(visibility, visibility) if visibility else None,
            created=_parse_datetime(google_event["created"]) if google_event.get("created") else None,
            updated=_parse_datetime(google_event["updated"]) if google_event.get("updated") else None,
        )

    @staticmethod
    def to_google_event(event: EventInput) -> dict:
        """
        Convert an event payload to Google Calendar API format.

        Only fields that are set are included, so the same body serves
        insert and patch.
        """
        google_event: dict = {}

        if event.title is not None:
            google_event["summary"] = event.title

        if event.description is not None:
            google_event["description"] = event.description

        if event.location is not None:
            google_event["location"] = event.location

        if event.status is not None:
            google_event["status"] = event.status

        if event.visibility is not None:
            google_event["visibility"] = event.visibility

        if event.start is not None:
            google_event["start"] = _format_boundary(event.start, event)

        if event.end is not None:
            google_event["end"] = _format_boundary(event.end, event)

        if event.attendees is not None:
            google_event["attendees"] = [
                {
                    key: value
                    for key, value in (
                        ("email", attendee.email),
                        ("displayName", attendee.name),
                    )
                    if value
                }
                for attendee in event.attendees
            ]

        if event.recurrence_rule is not None:
            rule = event.recurrence_rule
            if rule:
                # Google Calendar expects RRULE: prefix
                if not rule.startswith("RRULE:"):
                    rule = f"RRULE:{rule}"
                google_event["recurrence"] = [rule]
            else:
                google_event["recurrence"] = []

        return google_event


def _format_boundary(value: EventBoundary, event: EventInput) -> dict:
    """Format a start/end boundary as a Google date or dateTime object."""
    if event.is_all_day or not isinstance(value, datetime):
        day = value.date() if isinstance(value, datetime) else value
        return {"date": day.strftime("%Y-%m-%d")}

    return {
        "dateTime": _format_datetime(value),
        "timeZone": event.timezone or "UTC",
    }


def _format_datetime(dt: datetime) -> str:
    """
    Format datetime to RFC 3339 format for Google API.

    Args:
        dt: Datetime to format

    Returns:
        RFC 3339 formatted string
    """
    # Ensure UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    elif dt.tzinfo != timezone.utc:
        dt = dt.astimezone(timezone.utc)

    return dt.isoformat()


def _parse_datetime(dt_str: str) -> datetime:
    """Parse an RFC 3339 string; naive values are taken as UTC."""
    dt = parse_datetime(dt_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_date(date_str: str) -> date:
    """Parse a YYYY-MM-DD all-day boundary."""
    return datetime.strptime(date_str, "%Y-%m-%d").date()
