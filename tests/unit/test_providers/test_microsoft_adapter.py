"""
Unit tests for the Microsoft Graph adapter and recurrence mapping.
"""

from datetime import date, datetime, timezone

from calendar_sync.providers.base import Attendee, EventInput
from calendar_sync.providers.microsoft.adapter import (
    MicrosoftCalendarAdapter,
    pattern_to_rrule,
    rrule_to_pattern,
)


class TestPatternToRrule:
    """Test Graph patternedRecurrence -> RRULE."""

    def test_weekly_with_days_and_count(self):
        """Weekly patterns should carry BYDAY and COUNT."""
        recurrence = {
            "pattern": {"type": "weekly", "interval": 2, "daysOfWeek": ["monday", "Wednesday"]},
            "range": {"type": "numbered", "numberOfOccurrences": 10},
        }

        assert pattern_to_rrule(recurrence) == "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;COUNT=10"

    def test_daily_until(self):
        """endDate ranges should become UNTIL at the end of that day."""
        recurrence = {
            "pattern": {"type": "daily", "interval": 1},
            "range": {"type": "endDate", "endDate": "2026-06-30"},
        }

        assert pattern_to_rrule(recurrence) == "FREQ=DAILY;INTERVAL=1;UNTIL=20260630T235959Z"

    def test_relative_pattern_unsupported(self):
        """Relative monthly patterns should map to no rule."""
        assert pattern_to_rrule({"pattern": {"type": "relativeMonthly"}}) is None
        assert pattern_to_rrule(None) is None


class TestRruleToPattern:
    """Test RRULE -> Graph patternedRecurrence."""

    def test_weekly(self):
        """BYDAY codes should become day names."""
        result = rrule_to_pattern("RRULE:FREQ=WEEKLY;BYDAY=TU,TH;COUNT=6", date(2026, 3, 17))

        assert result["pattern"] == {
            "type": "weekly",
            "interval": 1,
            "daysOfWeek": ["tuesday", "thursday"],
        }
        assert result["range"] == {
            "type": "numbered",
            "startDate": "2026-03-17",
            "numberOfOccurrences": 6,
        }

    def test_weekly_defaults_to_start_day(self):
        """Weekly rules without BYDAY repeat on the start weekday."""
        result = rrule_to_pattern(
            "FREQ=WEEKLY", datetime(2026, 3, 16, 9, tzinfo=timezone.utc)
        )

        assert result["pattern"]["daysOfWeek"] == ["monday"]
        assert result["range"]["type"] == "noEnd"

    def test_monthly_until(self):
        """Monthly rules should use the start day and an end date."""
        result = rrule_to_pattern("FREQ=MONTHLY;UNTIL=20261231T000000Z", date(2026, 1, 15))

        assert result["pattern"]["type"] == "absoluteMonthly"
        assert result["pattern"]["dayOfMonth"] == 15
        assert result["range"]["endDate"] == "2026-12-31"

    def test_unsupported_frequency(self):
        """Unknown frequencies should map to None."""
        assert rrule_to_pattern("FREQ=HOURLY", date(2026, 1, 1)) is None


class TestFromGraphEvent:
    """Test Graph event conversion."""

    def test_timed_event(self):
        """Naive UTC times should become aware UTC datetimes."""
        graph_event = {
            "id": "AAMk-1",
            "subject": "Review",
            "body": {"contentType": "text", "content": "Quarterly review"},
            "start": {"dateTime": "2026-03-15T14:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": "2026-03-15T15:00:00.0000000", "timeZone": "UTC"},
            "originalStartTimeZone": "Pacific Standard Time",
            "location": {"displayName": "HQ"},
            "showAs": "busy",
            "sensitivity": "personal",
            "attendees": [
                {
                    "emailAddress": {"address": "a@example.com", "name": "A"},
                    "status": {"response": "tentativelyAccepted"},
                },
                {"emailAddress": {"name": "No address"}},
            ],
        }

        event = MicrosoftCalendarAdapter.from_graph_event(graph_event)

        assert event.start == datetime(2026, 3, 15, 14, tzinfo=timezone.utc)
        assert event.timezone == "Pacific Standard Time"
        assert event.description == "Quarterly review"
        assert event.location == "HQ"
        assert event.status == "confirmed"
        assert event.visibility == "private"
        assert event.attendees == [Attendee(email="a@example.com", name="A", status="tentative")]

    def test_all_day_cancelled(self):
        """All-day events keep dates; isCancelled maps to cancelled."""
        graph_event = {
            "id": "AAMk-2",
            "isAllDay": True,
            "isCancelled": True,
            "start": {"dateTime": "2026-03-15T00:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": "2026-03-16T00:00:00.0000000", "timeZone": "UTC"},
        }

        event = MicrosoftCalendarAdapter.from_graph_event(graph_event)

        assert event.start == date(2026, 3, 15)
        assert event.end == date(2026, 3, 16)
        assert event.status == "cancelled"
        assert event.title == "Untitled Event"

    def test_free_maps_to_confirmed(self):
        """showAs 'free' has no canonical equivalent and stays confirmed."""
        graph_event = {
            "id": "AAMk-3",
            "showAs": "free",
            "start": {"dateTime": "2026-03-15T09:00:00"},
            "end": {"dateTime": "2026-03-15T10:00:00"},
        }

        assert MicrosoftCalendarAdapter.from_graph_event(graph_event).status == "confirmed"


class TestToGraphEvent:
    """Test payload conversion."""

    def test_timed_payload_in_utc(self):
        """Aware datetimes should be sent as naive UTC strings."""
        body = MicrosoftCalendarAdapter.to_graph_event(EventInput(
            title="Session",
            start=datetime(2026, 3, 15, 10, tzinfo=timezone.utc),
            end=datetime(2026, 3, 15, 11, tzinfo=timezone.utc),
            status="tentative",
            attendees=[Attendee(email="c@example.com")],
        ))

        assert body["subject"] == "Session"
        assert body["start"] == {"dateTime": "2026-03-15T10:00:00", "timeZone": "UTC"}
        assert body["showAs"] == "tentative"
        assert body["attendees"][0]["emailAddress"]["address"] == "c@example.com"

    def test_all_day_payload(self):
        """All-day payloads should send midnight boundaries."""
        body = MicrosoftCalendarAdapter.to_graph_event(EventInput(
            start=date(2026, 3, 15), end=date(2026, 3, 16), is_all_day=True,
        ))

        assert body["isAllDay"] is True
        assert body["end"] == {"dateTime": "2026-03-16T00:00:00", "timeZone": "UTC"}

    def test_partial_update(self):
        """Unset fields should be omitted."""
        assert MicrosoftCalendarAdapter.to_graph_event(EventInput(location="Teams")) == {
            "location": {"displayName": "Teams"}
        }
