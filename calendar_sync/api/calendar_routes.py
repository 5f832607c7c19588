"""
Calendar integration API routes.

1. /calendar/auth/{provider} - Get the provider authorization URL
2. /calendar/connect - Exchange the callback code and store the integration
3. /calendar/disconnect/{provider} - Revoke and delete an integration
4. /calendar/integrations - List and update integrations
5. /calendar/calendars - Calendars of the connected accounts
6. /calendar/sync - Run a sync for the caller's integrations
7. /calendar/events - Stored events, and coaching-session event creation
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from calendar_sync.api.dependencies import get_calendar_manager, get_user_id
from calendar_sync.api.models import (
    AuthUrlResponse,
    CalendarEventResponse,
    CalendarListResponse,
    CalendarResponse,
    CoachingSessionEventRequest,
    ConnectCalendarRequest,
    DisconnectResponse,
    EventListResponse,
    IntegrationListResponse,
    IntegrationResponse,
    ProviderName,
    SyncRequest,
    SyncResponse,
    UpdateIntegrationRequest,
)
from calendar_sync.api.response_builder import build_sync_response
from calendar_sync.services.calendar_manager import CalendarManager, SyncOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/auth/{provider}", response_model=AuthUrlResponse)
async def get_auth_url(
    provider: ProviderName,
    redirect_uri: Optional[str] = Query(None, description="Override the configured redirect URI"),
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> AuthUrlResponse:
    """
    Start the authorization flow for a provider.

    The user ID travels as the OAuth state. For Apple the URL points back to
    the client with setup=manual, asking for an app-specific password.
    """
    auth_url = manager.get_auth_url(user_id, provider, redirect_uri)
    logger.info(f"Generated {provider} authorization URL for user {user_id}")
    return AuthUrlResponse(provider=provider, auth_url=auth_url)


@router.post("/connect", response_model=IntegrationResponse)
async def connect_calendar(
    request: ConnectCalendarRequest,
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> IntegrationResponse:
    integration = await manager.connect_calendar(
        user_id=user_id,
        provider=request.provider,
        code=request.code,
        redirect_uri=request.redirect_uri,
        calendar_id=request.calendar_id,
        calendar_name=request.calendar_name,
    )
    return IntegrationResponse.model_validate(integration)


@router.delete("/disconnect/{provider}", response_model=DisconnectResponse)
async def disconnect_calendar(
    provider: ProviderName,
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> DisconnectResponse:
    await manager.disconnect_calendar(user_id, provider)
    return DisconnectResponse(
        success=True,
        provider=provider,
        message=f"{provider} calendar disconnected",
    )


@router.get("/integrations", response_model=IntegrationListResponse)
async def list_integrations(
    provider: Optional[ProviderName] = Query(None),
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> IntegrationListResponse:
    integrations = await manager.list_integrations(user_id, provider)
    return IntegrationListResponse(
        integrations=[IntegrationResponse.model_validate(i) for i in integrations]
    )


@router.patch("/integrations/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: uuid.UUID,
    request: UpdateIntegrationRequest,
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> IntegrationResponse:
    integration = await manager.update_integration_settings(
        integration_id,
        user_id,
        sync_enabled=request.sync_enabled,
        settings=request.settings,
    )
    return IntegrationResponse.model_validate(integration)


@router.get("/calendars", response_model=CalendarListResponse)
async def get_calendars(
    provider: Optional[ProviderName] = Query(None),
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> CalendarListResponse:
    calendars = await manager.get_user_calendars(user_id, provider)
    return CalendarListResponse(
        calendars=[CalendarResponse.model_validate(c) for c in calendars]
    )


@router.post("/sync", response_model=SyncResponse)
async def sync_calendars(
    request: Optional[SyncRequest] = None,
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> SyncResponse:
    """
    Sync the caller's integrations.

    Always 200 when the run happened; per-integration failures are reported
    in the results with success=false.
    """
    request = request or SyncRequest()
    options = SyncOptions(
        integration_id=request.integration_id,
        user_id=user_id,
        provider=request.provider,
        start=request.start,
        end=request.end,
        direction=request.direction,
        sync_type="manual",
    )
    results = await manager.sync_calendars(options)
    return build_sync_response(results)


@router.get("/events", response_model=EventListResponse)
async def list_events(
    start: Optional[datetime] = Query(None, description="Only events ending after (ISO 8601)"),
    end: Optional[datetime] = Query(None, description="Only events starting before (ISO 8601)"),
    integration_id: Optional[uuid.UUID] = Query(None),
    is_coaching_session: Optional[bool] = Query(None),
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> EventListResponse:
    if start and end and start >= end:
        raise HTTPException(status_code=400, detail="start must be before end")

    events = await manager.list_events(
        user_id,
        start=start,
        end=end,
        integration_id=integration_id,
        is_coaching_session=is_coaching_session,
    )
    return EventListResponse(
        events=[CalendarEventResponse.model_validate(e) for e in events],
        total=len(events),
    )


@router.post("/events/coaching-session", response_model=CalendarEventResponse, status_code=201)
async def create_coaching_session_event(
    request: CoachingSessionEventRequest,
    user_id: str = Depends(get_user_id),
    manager: CalendarManager = Depends(get_calendar_manager),
) -> CalendarEventResponse:
    """
    Create a coaching-session event on the integration's calendar.

    The event is created on the provider first; nothing is stored if that fails.
    """
    event = await manager.create_coaching_session_event(
        session_id=request.session_id,
        integration_id=request.integration_id,
        event_data=request.to_event_input(),
        user_id=user_id,
    )
    return CalendarEventResponse.model_validate(event)
