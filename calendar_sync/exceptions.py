"""
Custom exceptions for calendar integration and synchronization.

Provides structured error handling with retryable flags and stable codes
that end up in sync logs.
"""


class CalendarSyncError(Exception):
    """Base exception for calendar integration operations."""

    retryable: bool = False
    code: str = "calendar_error"

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigurationError(CalendarSyncError):
    """Required configuration is missing or invalid. Fails service startup."""

    code = "configuration_error"


class UnsupportedProviderError(CalendarSyncError):
    """No adapter is registered for the requested provider."""

    code = "unsupported_provider"


class AuthError(CalendarSyncError):
    """
    Authentication or authorization failure.

    Causes:
    - Authorization code rejected or already used
    - Redirect URI does not match the one used for authorization
    - CalDAV username / app-specific password rejected
    - Refresh token revoked
    """

    code = "auth_error"


class TokenExpiredError(CalendarSyncError):
    """Access token expired and no refresh token is available."""

    code = "token_expired"


class EncryptionError(CalendarSyncError):
    """
    Credential vault failure.

    Missing or malformed encryption key. Never retried.
    """

    code = "encryption_error"


class DecryptionError(EncryptionError):
    """Stored ciphertext was tampered with or is malformed."""

    code = "decryption_error"


class ProviderAPIError(CalendarSyncError):
    """Upstream provider returned an error response."""

    code = "provider_api_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.status_code = status_code
        if status_code is not None and status_code >= 500:
            self.retryable = True


class ProviderPermissionError(ProviderAPIError):
    """Access denied for the calendar or event."""

    code = "permission_denied"


class ProviderNotFoundError(ProviderAPIError):
    """Event or calendar not found on the provider."""

    code = "not_found"


class RateLimitError(ProviderAPIError):
    """
    Rate limit or quota hit (429 response).

    Retryable after exponential backoff.
    """

    retryable = True
    code = "rate_limited"


class NoCalendarsFound(CalendarSyncError):
    """The connected account exposes no calendars."""

    code = "no_calendars_found"


class IntegrationNotFoundError(CalendarSyncError):
    """No calendar integration matches the request."""

    code = "integration_not_found"


class EventNotFoundError(CalendarSyncError):
    """No canonical calendar event matches the request."""

    code = "event_not_found"


class SyncInProgressError(CalendarSyncError):
    """Another sync run already holds the integration's lock."""

    code = "sync_in_progress"


class SyncTimeoutError(CalendarSyncError):
    """A sync run exceeded its overall time budget."""

    code = "sync_timeout"


def error_code(error: Exception) -> str:
    """Return the stable code recorded in sync logs for an exception."""
    if isinstance(error, CalendarSyncError):
        return error.code
    return "internal_error"
