"""
Unit tests for GoogleCalendarClient.

Tests API wrapper methods, error handling and pagination. The discovery
service is replaced with a MagicMock.
"""

from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from calendar_sync.exceptions import (
    AuthError,
    ProviderNotFoundError,
    ProviderPermissionError,
    RateLimitError,
)
from calendar_sync.providers.google.client import GoogleCalendarClient, _is_retryable_error


def make_http_error(status: int, message: str = "Error") -> HttpError:
    """Create a mock HttpError."""
    resp = MagicMock()
    resp.status = status
    resp.reason = message
    return HttpError(resp=resp, content=message.encode())


@pytest.fixture
def mock_service():
    return MagicMock()


@pytest.fixture
def client(mock_service):
    with patch("calendar_sync.providers.google.client.build", return_value=mock_service):
        yield GoogleCalendarClient("access-token", timeout=5)


class TestListEvents:
    """Test event listing."""

    def test_list_events_parameters(self, client, mock_service):
        """Instances should be expanded and deleted events included."""
        mock_service.events().list().execute.return_value = {"items": []}

        client.list_events("primary", "2026-03-01T00:00:00Z", "2026-04-01T00:00:00Z")

        kwargs = mock_service.events().list.call_args.kwargs
        assert kwargs["calendarId"] == "primary"
        assert kwargs["singleEvents"] is True
        assert kwargs["showDeleted"] is True
        assert kwargs["orderBy"] == "startTime"

    def test_list_all_events_paginates(self, client, mock_service):
        """All pages should be concatenated and the time zone kept."""
        mock_service.events().list().execute.side_effect = [
            {"items": [{"id": "a"}], "timeZone": "Europe/Paris", "nextPageToken": "p2"},
            {"items": [{"id": "b"}, {"id": "c"}]},
        ]

        events, calendar_timezone = client.list_all_events(
            "primary", "2026-03-01T00:00:00Z", "2026-04-01T00:00:00Z"
        )

        assert [e["id"] for e in events] == ["a", "b", "c"]
        assert calendar_timezone == "Europe/Paris"

    def test_list_all_calendars_paginates(self, client, mock_service):
        """Calendar list pagination should be exhausted."""
        mock_service.calendarList().list().execute.side_effect = [
            {"items": [{"id": "primary"}], "nextPageToken": "p2"},
            {"items": [{"id": "team"}]},
        ]

        calendars = client.list_all_calendars()

        assert [c["id"] for c in calendars] == ["primary", "team"]


class TestErrorMapping:
    """Test HttpError conversion."""

    def test_unauthorized(self, client, mock_service):
        """401 should raise AuthError."""
        mock_service.calendars().get().execute.side_effect = make_http_error(401)

        with pytest.raises(AuthError):
            client.get_calendar()

    def test_forbidden(self, client, mock_service):
        """403 without quota wording should raise ProviderPermissionError."""
        mock_service.events().insert().execute.side_effect = make_http_error(403, "Forbidden")

        with pytest.raises(ProviderPermissionError):
            client.insert_event("primary", {"summary": "x"})

    def test_not_found(self, client, mock_service):
        """404 on patch should raise ProviderNotFoundError."""
        mock_service.events().patch().execute.side_effect = make_http_error(404)

        with pytest.raises(ProviderNotFoundError):
            client.patch_event("primary", "missing", {"summary": "x"})

    def test_rate_limit_is_retryable(self):
        """429 HttpErrors should be classified as retryable."""
        assert _is_retryable_error(make_http_error(429)) is True
        assert _is_retryable_error(make_http_error(400)) is False
        assert RateLimitError("quota").retryable is True


class TestDeleteEvent:
    """Test event deletion."""

    def test_delete_event(self, client, mock_service):
        """Delete should call the API with calendar and event id."""
        mock_service.events().delete().execute.return_value = ""

        client.delete_event("primary", "evt-1")

        mock_service.events().delete.assert_called_with(calendarId="primary", eventId="evt-1")

    def test_delete_already_gone(self, client, mock_service):
        """Deleting an event that no longer exists should succeed."""
        mock_service.events().delete().execute.side_effect = make_http_error(410, "Gone")

        client.delete_event("primary", "evt-1")
