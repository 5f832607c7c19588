"""
Pydantic request and response models for the calendar sync API.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from calendar_sync.providers.base import Attendee, EventInput

ProviderName = Literal["google", "microsoft", "apple"]


# =============================================================================
# Request Models
# =============================================================================


class ConnectCalendarRequest(BaseModel):
    """OAuth callback payload (or bundled CalDAV login for Apple)."""

    provider: ProviderName = Field(..., description="Calendar provider")
    code: str = Field(..., min_length=1, description="Authorization code from the provider")
    redirect_uri: Optional[str] = Field(
        None,
        description="Redirect URI used for authorization (defaults to the configured one)",
    )
    calendar_id: Optional[str] = Field(None, description="Calendar to sync (defaults to primary)")
    calendar_name: Optional[str] = Field(None, description="Display name for the calendar")


class UpdateIntegrationRequest(BaseModel):
    """Change sync settings of an integration."""

    sync_enabled: Optional[bool] = Field(None, description="Include in sync runs")
    settings: Optional[dict] = Field(None, description="Free-form integration preferences")


class SyncRequest(BaseModel):
    """Trigger a sync run for the caller's integrations."""

    integration_id: Optional[uuid.UUID] = Field(None, description="Only sync this integration")
    provider: Optional[ProviderName] = Field(None, description="Only sync this provider")
    start: Optional[datetime] = Field(None, description="Window start (default now - 30 days)")
    end: Optional[datetime] = Field(None, description="Window end (default now + 90 days)")
    direction: Literal["import", "export", "bidirectional"] = Field(
        default="bidirectional",
        description="Which way changes flow",
    )

    @model_validator(mode="after")
    def validate_window(self) -> "SyncRequest":
        if self.start:
            self.start = _as_datetime(self.start)
        if self.end:
            self.end = _as_datetime(self.end)
        if self.start and self.end and self.start >= self.end:
            raise ValueError("start must be before end")
        return self


class AttendeeModel(BaseModel):
    email: str
    name: Optional[str] = None
    status: Optional[str] = None


class CoachingSessionEventRequest(BaseModel):
    """Create a calendar event for a coaching session."""

    session_id: str = Field(..., min_length=1, description="Coaching session ID")
    integration_id: uuid.UUID = Field(..., description="Integration whose calendar gets the event")
    title: str = Field(..., min_length=1, max_length=500, description="Event title")
    start: Union[date, datetime] = Field(..., description="Start time, or date for all-day events")
    end: Union[date, datetime] = Field(..., description="End time, or exclusive date for all-day events")
    description: Optional[str] = None
    timezone: Optional[str] = Field(None, description="IANA timezone")
    is_all_day: bool = False
    location: Optional[str] = None
    attendees: list[AttendeeModel] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def validate_title_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_times(self) -> "CoachingSessionEventRequest":
        # All-day events carry dates, timed events aware datetimes
        if self.is_all_day:
            self.start = _as_date(self.start)
            self.end = _as_date(self.end)
        else:
            self.start = _as_datetime(self.start)
            self.end = _as_datetime(self.end)
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self

    def to_event_input(self) -> EventInput:
        return EventInput(
            title=self.title,
            start=self.start,
            end=self.end,
            description=self.description,
            timezone=self.timezone,
            is_all_day=self.is_all_day,
            location=self.location,
            attendees=[
                Attendee(email=a.email, name=a.name, status=a.status)
                for a in self.attendees
            ],
        )


# =============================================================================
# Response Models
# =============================================================================


class AuthUrlResponse(BaseModel):
    """URL the user visits to grant access."""

    provider: ProviderName
    auth_url: str


class IntegrationResponse(BaseModel):
    """A calendar integration. Credentials are never included."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    provider: str
    calendar_id: str
    calendar_name: Optional[str] = None
    is_active: bool
    sync_enabled: bool
    last_sync_at: Optional[datetime] = None
    sync_errors: Optional[list] = None
    settings: Optional[dict] = None
    created_at: datetime


class IntegrationListResponse(BaseModel):
    integrations: list[IntegrationResponse]


class CalendarResponse(BaseModel):
    """A calendar on a connected account."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    timezone: str
    is_primary: bool
    access_role: str
    description: Optional[str] = None
    provider: Optional[str] = None


class CalendarListResponse(BaseModel):
    calendars: list[CalendarResponse]


class SyncErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: Optional[str] = None
    message: str
    code: str


class SyncResultResponse(BaseModel):
    """Outcome of one integration's sync run."""

    model_config = ConfigDict(from_attributes=True)

    integration_id: uuid.UUID
    provider: str
    success: bool
    events_processed: int
    events_created: int
    events_updated: int
    events_deleted: int
    errors: list[SyncErrorResponse]
    unmatched_event_ids: list[str]
    sync_log_id: Optional[uuid.UUID] = None


class SyncSummary(BaseModel):
    total: int = Field(..., description="Integrations synced")
    succeeded: int
    failed: int
    events_processed: int
    events_created: int
    events_updated: int
    events_deleted: int


class SyncResponse(BaseModel):
    """Results of a sync call plus aggregate counts."""

    results: list[SyncResultResponse]
    summary: SyncSummary


class CalendarEventResponse(BaseModel):
    """A stored calendar event."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    integration_id: uuid.UUID
    provider_event_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    timezone: str
    is_all_day: bool
    location: Optional[str] = None
    attendees: list[dict] = Field(default_factory=list)
    recurrence_rule: Optional[str] = None
    status: str
    visibility: Optional[str] = None
    session_id: Optional[str] = None
    is_coaching_session: bool
    is_blocked: bool
    sync_status: str
    last_sync_at: Optional[datetime] = None


class EventListResponse(BaseModel):
    """Response for listing events."""

    events: list[CalendarEventResponse] = Field(..., description="List of events")
    total: int = Field(..., description="Total matching events")


class DisconnectResponse(BaseModel):
    success: bool
    provider: str
    message: str


class ErrorResponse(BaseModel):
    """Error information for failed requests."""

    error_type: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(None, description="Additional error details")
    retryable: bool = Field(default=False, description="Whether request can be retried")


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Health status")
    version: str = Field(..., description="API version")
    providers: list[str] = Field(..., description="Registered calendar providers")
    database_connected: bool = Field(..., description="Database connection status")


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
