"""
Thin synchronous wrapper over the Google Calendar API v3 discovery client.

Translates HttpError into engine exceptions and retries transient failures
with tenacity. Every HTTP call carries an httplib2 timeout.
"""

import logging
from typing import Optional

import httplib2
from google.oauth2.credentials import Credentials as GoogleCredentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from calendar_sync.exceptions import (
    AuthError,
    CalendarSyncError,
    ProviderAPIError,
    ProviderNotFoundError,
    ProviderPermissionError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exception, CalendarSyncError):
        return exception.retryable
    if isinstance(exception, HttpError):
        return exception.resp.status in (429, 500, 502, 503)
    return False


api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_retryable_error),
    reraise=True,
)


_ERRORS_BY_STATUS: dict[int, tuple[type[ProviderAPIError], str]] = {
    403: (ProviderPermissionError, "Google denied access to the calendar"),
    404: (ProviderNotFoundError, "Google calendar or event does not exist"),
    410: (ProviderNotFoundError, "Google event was already deleted"),
    429: (RateLimitError, "Google Calendar rate limit reached"),
}


def _translate_http_error(error: HttpError) -> CalendarSyncError:
    """Map a googleapiclient HttpError onto the engine's exception types."""
    status = error.resp.status
    detail = str(error)

    if status == 401:
        return AuthError("Google rejected the access token", original_error=error)
    if status == 403 and ("quota" in detail.lower() or "rate limit" in detail.lower()):
        return RateLimitError("Google Calendar quota exhausted", status_code=status, original_error=error)
    if status in _ERRORS_BY_STATUS:
        error_type, message = _ERRORS_BY_STATUS[status]
        return error_type(message, status_code=status, original_error=error)
    return ProviderAPIError(
        f"Google Calendar returned {status}: {detail}",
        status_code=status,
        original_error=error,
    )


def _execute(request):
    """Run a prepared API request, raising engine exceptions on failure."""
    try:
        return request.execute()
    except HttpError as e:
        raise _translate_http_error(e) from e
    except (TimeoutError, OSError) as e:
        raise ProviderAPIError(f"Google Calendar request failed: {e}", original_error=e) from e


class GoogleCalendarClient:
    """
    Synchronous Calendar API v3 client bound to one access token.

    Single-page calls retry transient failures (5xx, 429) through api_retry;
    the list_all_* helpers follow nextPageToken. The provider runs these
    calls in a thread pool.
    """

    def __init__(self, access_token: str, timeout: float = 30.0):
        credentials = GoogleCredentials(token=access_token)
        http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=timeout))
        self._service: Resource = build("calendar", "v3", http=http, cache_discovery=False)

    @property
    def service(self) -> Resource:
        return self._service

    @api_retry
    def list_calendars(self, page_token: Optional[str] = None) -> dict:
        return _execute(self._service.calendarList().list(pageToken=page_token))

    def list_all_calendars(self) -> list[dict]:
        calendars: list[dict] = []
        page_token = None
        while True:
            page = self.list_calendars(page_token=page_token)
            calendars.extend(page.get("items", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                return calendars

    @api_retry
    def list_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
        max_results: int = 250,
        page_token: Optional[str] = None,
    ) -> dict:
        """
        Fetch one page of events between time_min and time_max (RFC 3339).

        Recurring series come back expanded into instances, and cancelled
        instances are included so that deletions show up as status changes.
        """
        return _execute(self._service.events().list(
            calendarId=calendar_id,
            timeMin=time_min,
            timeMax=time_max,
            singleEvents=True,
            orderBy="startTime",
            showDeleted=True,
            maxResults=max_results,
            pageToken=page_token,
        ))

    def list_all_events(
        self,
        calendar_id: str,
        time_min: str,
        time_max: str,
    ) -> tuple[list[dict], Optional[str]]:
        """Fetch every page; returns the events and the calendar's time zone."""
        events: list[dict] = []
        calendar_timezone = None
        page_token = None

        while True:
            page = self.list_events(calendar_id, time_min, time_max, page_token=page_token)
            events.extend(page.get("items", []))
            calendar_timezone = calendar_timezone or page.get("timeZone")
            page_token = page.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Fetched {len(events)} Google events from {calendar_id}")
        return events, calendar_timezone

    @api_retry
    def get_calendar(self, calendar_id: str = "primary") -> dict:
        return _execute(self._service.calendars().get(calendarId=calendar_id))

    @api_retry
    def insert_event(self, calendar_id: str, body: dict) -> dict:
        created = _execute(self._service.events().insert(calendarId=calendar_id, body=body))
        logger.info(f"Created Google event {created.get('id')} in {calendar_id}")
        return created

    @api_retry
    def patch_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        """Send only the fields present in body; others are left untouched."""
        patched = _execute(self._service.events().patch(
            calendarId=calendar_id,
            eventId=event_id,
            body=body,
        ))
        logger.info(f"Patched Google event {event_id} in {calendar_id}")
        return patched

    @api_retry
    def delete_event(self, calendar_id: str, event_id: str) -> None:
        """Delete an event; one that is already gone counts as deleted."""
        try:
            _execute(self._service.events().delete(calendarId=calendar_id, eventId=event_id))
        except ProviderNotFoundError:
            logger.warning(f"Google event {event_id} was already deleted")
            return
        logger.info(f"Deleted Google event {event_id} from {calendar_id}")
