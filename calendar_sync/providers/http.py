"""
Shared HTTP error handling and retry policy for httpx-based providers.
"""

import logging

import httpx
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
    return False


api_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception(_is_retryable_error),
    reraise=True,
)


def raise_for_status(response: httpx.Response, service: str) -> None:
    """Convert an error response to the matching engine exception."""
    if response.is_success:
        return

    status = response.status_code
    detail = response.text[:500]

    if status == 401:
        raise AuthError(
            f"{service} authentication failed - credentials may be invalid or expired"
        )
    elif status == 403:
        raise ProviderPermissionError(
            f"{service} access denied",
            status_code=status,
        )
    elif status in (404, 410):
        raise ProviderNotFoundError(
            f"{service} resource not found",
            status_code=status,
        )
    elif status == 429:
        raise RateLimitError(
            f"{service} rate limit exceeded - too many requests",
            status_code=status,
        )
    else:
        raise ProviderAPIError(
            f"{service} error ({status}): {detail}",
            status_code=status,
        )


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    service: str,
    **kwargs,
) -> httpx.Response:
    """Send a request, mapping transport failures and error statuses."""
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise ProviderAPIError(f"{service} request timed out", original_error=e)
    except httpx.RequestError as e:
        raise ProviderAPIError(f"{service} request failed: {e}", original_error=e)

    raise_for_status(response, service)
    return response
