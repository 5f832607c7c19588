"""
Request logging middleware.

Every request gets a short ID (taken from an incoming X-Request-ID header
when present), which is logged with the caller and the elapsed time and
echoed back in the response headers. Error handlers read the ID through
get_request_id() so their log lines can be correlated.
"""

import logging
import time
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    return _request_id.get()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request with its caller, status and elapsed time.

    Only the path is logged: OAuth callbacks carry authorization codes in
    their query strings.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        token = _request_id.set(req_id)
        caller = request.headers.get("X-User-ID", "anonymous")
        started = time.perf_counter()

        logger.info(
            f"[{req_id}] {request.method} {request.url.path} ({caller})",
            extra={"request_id": req_id, "user_id": caller},
        )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"[{req_id}] {request.method} {request.url.path} crashed after "
                f"{(time.perf_counter() - started) * 1000:.0f}ms"
            )
            raise
        finally:
            _request_id.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[{req_id}] {response.status_code} in {elapsed_ms:.0f}ms",
            extra={"request_id": req_id, "status_code": response.status_code},
        )
        response.headers[REQUEST_ID_HEADER] = req_id
        return response
