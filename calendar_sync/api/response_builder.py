"""
Response builder for the calendar sync API.

Maps engine results and exceptions onto API responses.
"""

from typing import Any

from calendar_sync.api.models import (
    SyncErrorResponse,
    SyncResponse,
    SyncResultResponse,
    SyncSummary,
)
from calendar_sync.exceptions import (
    AuthError,
    CalendarSyncError,
    EncryptionError,
    EventNotFoundError,
    IntegrationNotFoundError,
    NoCalendarsFound,
    ProviderAPIError,
    SyncInProgressError,
    TokenExpiredError,
    UnsupportedProviderError,
)
from calendar_sync.services.calendar_manager import SyncResult

# Most specific first
_STATUS_BY_ERROR: list[tuple[type[CalendarSyncError], int]] = [
    (AuthError, 400),
    (TokenExpiredError, 400),
    (NoCalendarsFound, 400),
    (UnsupportedProviderError, 400),
    (IntegrationNotFoundError, 404),
    (EventNotFoundError, 404),
    (SyncInProgressError, 409),
    (ProviderAPIError, 502),
    (EncryptionError, 500),
]


def status_for_error(error: CalendarSyncError) -> int:
    """HTTP status code for an engine exception."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def build_sync_response(results: list[SyncResult]) -> SyncResponse:
    """Build the sync response with per-integration results and a summary."""
    responses = [
        SyncResultResponse(
            integration_id=result.integration_id,
            provider=result.provider,
            success=result.success,
            events_processed=result.events_processed,
            events_created=result.events_created,
            events_updated=result.events_updated,
            events_deleted=result.events_deleted,
            errors=[SyncErrorResponse(**error.to_dict()) for error in result.errors],
            unmatched_event_ids=result.unmatched_event_ids,
            sync_log_id=result.sync_log_id,
        )
        for result in results
    ]

    succeeded = sum(1 for result in results if result.success)
    summary = SyncSummary(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        events_processed=sum(r.events_processed for r in results),
        events_created=sum(r.events_created for r in results),
        events_updated=sum(r.events_updated for r in results),
        events_deleted=sum(r.events_deleted for r in results),
    )
    return SyncResponse(results=responses, summary=summary)


def build_error_response(
    error_type: str,
    message: str,
    details: dict[str, Any] | None = None,
    retryable: bool = False,
) -> dict[str, Any]:
    """Build standardized error response dictionary."""
    return {
        "error_type": error_type,
        "message": message,
        "details": details,
        "retryable": retryable,
    }
