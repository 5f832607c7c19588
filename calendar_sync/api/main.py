"""
FastAPI application for the calendar sync engine.

This is the main entry point for the HTTP API, providing:
- Calendar integration endpoints under /calendar
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from calendar_sync.api.calendar_routes import router as calendar_router
from calendar_sync.api.dependencies import (
    get_calendar_manager,
    init_calendar_manager,
    reset_calendar_manager,
)
from calendar_sync.api.middleware import RequestLoggingMiddleware, get_request_id
from calendar_sync.api.models import HealthResponse
from calendar_sync.api.response_builder import build_error_response, status_for_error
from calendar_sync.auth.vault import CredentialVault
from calendar_sync.config import get_settings
from calendar_sync.database import get_engine, get_session_factory
from calendar_sync.exceptions import CalendarSyncError
from calendar_sync.providers.registry import build_provider_registry
from calendar_sync.services.calendar_manager import CalendarManager

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Missing provider configuration or an invalid encryption key raises
    ConfigurationError / EncryptionError here and aborts startup.
    """
    settings = get_settings()
    logging.getLogger("calendar_sync").setLevel(settings.log_level)

    # Startup
    logger.info("Starting calendar sync API")
    manager = CalendarManager(
        session_factory=get_session_factory(),
        registry=build_provider_registry(settings),
        vault=CredentialVault(settings.encryption_key),
        settings=settings,
    )
    init_calendar_manager(manager)
    logger.info("Calendar sync API started")

    yield

    # Shutdown
    logger.info("Shutting down calendar sync API")
    reset_calendar_manager()
    await get_engine().dispose()


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Calendar Sync API",
    description="""
# Calendar Sync API

Connects users' Google, Microsoft and Apple (CalDAV) calendars and keeps them
in sync with the internal event store.

## Connecting a calendar
1. **GET /calendar/auth/{provider}** - Get the authorization URL
2. User grants access; the provider redirects back with a code
3. **POST /calendar/connect** - Exchange the code and store the integration

Apple has no OAuth flow: the code is a bundled Apple ID and app-specific password.

## Error Handling

- **400** - Rejected credentials, no calendars, unsupported provider
- **401** - Missing X-User-ID header
- **404** - Integration or event not found
- **409** - Sync already in progress
- **502** - Calendar provider error
- **500** - Server error
    """,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(calendar_router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(CalendarSyncError)
async def calendar_error_handler(request: Request, exc: CalendarSyncError):
    """Map engine exceptions to HTTP status codes."""
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(f"[{get_request_id()}] {exc.code}: {exc.message}")
    else:
        logger.info(f"[{get_request_id()}] {exc.code}: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content=build_error_response(
            error_type=exc.code,
            message=exc.message,
            retryable=exc.retryable,
        ),
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=400,
        content=build_error_response(error_type="validation_error", message=str(exc)),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            error_type="http_error",
            message=exc.detail,
            retryable=exc.status_code >= 500,
        ),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"[{get_request_id()}] Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=build_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            retryable=True,
        ),
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
async def health_check() -> HealthResponse:
    """
    Check API health status.

    Returns:
        Health status including registered providers and database status
    """
    try:
        providers = get_calendar_manager().provider_names
    except HTTPException:
        providers = None

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        database_connected = True
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        database_connected = False

    healthy = providers is not None and database_connected
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=API_VERSION,
        providers=providers or [],
        database_connected=database_connected,
    )


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "calendar_sync.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    settings = get_settings()
    run_server(host=settings.api_host, port=settings.api_port, reload=settings.is_development)
