"""
Unit tests for GoogleCalendarAdapter.

Tests conversion between canonical types and Google Calendar API format.
"""

from datetime import date, datetime, timezone

from calendar_sync.providers.base import Attendee, EventInput
from calendar_sync.providers.google.adapter import GoogleCalendarAdapter


class TestFromGoogleEvent:
    """Test conversion from Google Calendar format."""

    def test_timed_event(self):
        """Timed events should carry aware datetimes and their timezone."""
        google_event = {
            "id": "evt-1",
            "summary": "Team standup",
            "description": "Daily sync",
            "location": "Room 4",
            "start": {"dateTime": "2026-03-15T10:00:00-04:00", "timeZone": "America/New_York"},
            "end": {"dateTime": "2026-03-15T10:30:00-04:00", "timeZone": "America/New_York"},
            "status": "confirmed",
            "visibility": "confidential",
            "created": "2026-03-01T08:00:00Z",
            "updated": "2026-03-02T08:00:00Z",
        }

        event = GoogleCalendarAdapter.from_google_event(google_event)

        assert event.id == "evt-1"
        assert event.title == "Team standup"
        assert event.start == datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)
        assert event.end == datetime(2026, 3, 15, 14, 30, tzinfo=timezone.utc)
        assert event.timezone == "America/New_York"
        assert event.is_all_day is False
        assert event.visibility == "private"
        assert event.created == datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_all_day_event(self):
        """All-day events should carry date boundaries and no timezone."""
        google_event = {
            "id": "evt-2",
            "summary": "Offsite",
            "start": {"date": "2026-03-15"},
            "end": {"date": "2026-03-17"},
        }

        event = GoogleCalendarAdapter.from_google_event(google_event)

        assert event.is_all_day is True
        assert event.start == date(2026, 3, 15)
        assert event.end == date(2026, 3, 17)
        assert event.timezone is None

    def test_calendar_timezone_fallback(self):
        """Events without timeZone should use the calendar's zone."""
        google_event = {
            "id": "evt-3",
            "start": {"dateTime": "2026-03-15T10:00:00Z"},
            "end": {"dateTime": "2026-03-15T11:00:00Z"},
        }

        event = GoogleCalendarAdapter.from_google_event(
            google_event, default_timezone="Europe/Berlin"
        )

        assert event.timezone == "Europe/Berlin"
        assert event.title == "Untitled"

    def test_cancelled_stub(self):
        """Cancelled instances without times should have no boundaries."""
        event = GoogleCalendarAdapter.from_google_event({"id": "evt-4", "status": "cancelled"})

        assert event.status == "cancelled"
        assert event.has_times is False

    def test_attendees_and_recurrence(self):
        """Attendees and RRULE should map to the canonical vocabulary."""
        google_event = {
            "id": "evt-5",
            "summary": "Coaching",
            "start": {"dateTime": "2026-03-15T10:00:00Z"},
            "end": {"dateTime": "2026-03-15T11:00:00Z"},
            "attendees": [
                {"email": "coach@example.com", "displayName": "Coach", "responseStatus": "accepted"},
                {"displayName": "No email"},
            ],
            "recurrence": ["EXDATE:20260322T100000Z", "RRULE:FREQ=WEEKLY;BYDAY=SU"],
        }

        event = GoogleCalendarAdapter.from_google_event(google_event)

        assert event.attendees == [
            Attendee(email="coach@example.com", name="Coach", status="accepted")
        ]
        assert event.recurrence_rule == "FREQ=WEEKLY;BYDAY=SU"


class TestFromGoogleCalendar:
    """Test calendarList entry conversion."""

    def test_primary_calendar(self):
        """Primary flag, access role and override name should be kept."""
        entry = {
            "id": "user@example.com",
            "summary": "user@example.com",
            "summaryOverride": "My calendar",
            "timeZone": "Europe/London",
            "primary": True,
            "accessRole": "owner",
        }

        calendar = GoogleCalendarAdapter.from_google_calendar(entry)

        assert calendar.name == "My calendar"
        assert calendar.is_primary is True
        assert calendar.access_role == "owner"
        assert calendar.timezone == "Europe/London"
        assert calendar.provider == "google"


class TestToGoogleEvent:
    """Test conversion to Google Calendar format."""

    def test_timed_event(self):
        """Timed payloads should produce dateTime objects in UTC."""
        payload = EventInput(
            title="Coaching session",
            start=datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc),
            end=datetime(2026, 3, 15, 11, 0, tzinfo=timezone.utc),
            timezone="America/New_York",
            attendees=[Attendee(email="client@example.com", name="Client")],
            recurrence_rule="FREQ=WEEKLY;COUNT=4",
        )

        body = GoogleCalendarAdapter.to_google_event(payload)

        assert body["summary"] == "Coaching session"
        assert body["start"] == {
            "dateTime": "2026-03-15T10:00:00+00:00",
            "timeZone": "America/New_York",
        }
        assert body["attendees"] == [{"email": "client@example.com", "displayName": "Client"}]
        assert body["recurrence"] == ["RRULE:FREQ=WEEKLY;COUNT=4"]

    def test_all_day_event(self):
        """All-day payloads should produce date objects."""
        payload = EventInput(
            title="Holiday",
            start=date(2026, 12, 25),
            end=date(2026, 12, 26),
            is_all_day=True,
        )

        body = GoogleCalendarAdapter.to_google_event(payload)

        assert body["start"] == {"date": "2026-12-25"}
        assert body["end"] == {"date": "2026-12-26"}

    def test_partial_update_only_sets_fields(self):
        """Unset fields should not appear in the body."""
        body = GoogleCalendarAdapter.to_google_event(EventInput(location="Zoom"))

        assert body == {"location": "Zoom"}

    def test_clearing_recurrence(self):
        """An empty recurrence rule should clear recurrence."""
        body = GoogleCalendarAdapter.to_google_event(EventInput(recurrence_rule=""))

        assert body == {"recurrence": []}
