"""
Calendar provider protocol and shared value types.

Every provider (Google, Microsoft, Apple/CalDAV) implements CalendarProvider
independently; the manager only ever talks to this contract.
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Literal, Optional, Protocol, Union

ProviderName = Literal["google", "microsoft", "apple"]

PROVIDERS: tuple[str, ...] = ("google", "microsoft", "apple")

EventBoundary = Union[date, datetime]


@dataclass
class Credentials:
    """
    Plaintext provider credentials for the lifetime of one operation.

    Token fields are excluded from repr so they never end up in logs.
    """

    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None

    @classmethod
    def from_token_response(
        cls,
        token_data: dict,
        fallback_refresh_token: Optional[str] = None,
    ) -> "Credentials":
        """Build credentials from an OAuth 2.0 token endpoint response."""
        expires_in = token_data.get("expires_in")
        expires_at = None
        if expires_in is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

        return cls(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or fallback_refresh_token,
            expires_at=expires_at,
            scope=token_data.get("scope"),
        )

    def expires_within(self, buffer: timedelta) -> bool:
        """Check if the access token expires within the buffer (never, if no expiry)."""
        if self.expires_at is None:
            return False
        return self.expires_at - datetime.now(timezone.utc) <= buffer


@dataclass
class CalendarMetadata:
    """A calendar exposed by a provider account."""

    id: str
    name: str
    timezone: str = "UTC"
    is_primary: bool = False
    access_role: str = "reader"
    description: Optional[str] = None
    provider: Optional[str] = None


@dataclass
class Attendee:
    """Event attendee."""

    email: str
    name: Optional[str] = None
    status: Optional[str] = None

    def to_dict(self) -> dict:
        return {"email": self.email, "name": self.name, "status": self.status}

    @classmethod
    def from_dict(cls, data: dict) -> "Attendee":
        return cls(email=data["email"], name=data.get("name"), status=data.get("status"))


@dataclass
class ExternalEvent:
    """
    Event as returned by a provider, normalized to the canonical vocabulary.

    All-day events carry date boundaries and no timezone; timed events carry
    aware datetimes and an explicit timezone id. Cancelled events may have
    no boundaries at all.
    """

    id: str
    title: str
    start: Optional[EventBoundary]
    end: Optional[EventBoundary]
    description: Optional[str] = None
    timezone: Optional[str] = None
    is_all_day: bool = False
    location: Optional[str] = None
    attendees: list[Attendee] = field(default_factory=list)
    recurrence_rule: Optional[str] = None
    status: str = "confirmed"
    visibility: Optional[str] = None
    created: Optional[datetime] = None
    updated: Optional[datetime] = None

    @property
    def has_times(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass
class EventInput:
    """
    Event payload for create/update calls.

    On update only fields that are not None are sent to the provider.
    """

    title: Optional[str] = None
    start: Optional[EventBoundary] = None
    end: Optional[EventBoundary] = None
    description: Optional[str] = None
    timezone: Optional[str] = None
    is_all_day: Optional[bool] = None
    location: Optional[str] = None
    attendees: Optional[list[Attendee]] = None
    recurrence_rule: Optional[str] = None
    status: Optional[str] = None
    visibility: Optional[str] = None


def sort_key(event: ExternalEvent) -> tuple:
    """
    Sort key placing events by start ascending; events without times go last.

    Dates sort as midnight UTC so all-day and timed events interleave.
    """
    start = event.start
    if start is None:
        return (1, datetime.max.replace(tzinfo=timezone.utc))
    return (0, boundary_to_utc(start))


def boundary_to_utc(value: EventBoundary) -> datetime:
    """Convert a date or datetime boundary to an aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


class CalendarProvider(Protocol):
    """
    Protocol for external calendar providers.

    Implementations:
    - GoogleCalendarProvider: OAuth 2.0 + Google Calendar API
    - MicrosoftCalendarProvider: Microsoft identity platform + Graph
    - AppleCalendarProvider: CalDAV with app-specific passwords

    All methods are async. Errors are raised as CalendarSyncError subclasses.
    """

    name: str

    @abstractmethod
    def get_auth_url(self, user_id: str, redirect_uri: str) -> str:
        """Build the URL the user is sent to; user_id travels as the OAuth state."""
        ...

    @abstractmethod
    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> Credentials:
        """Exchange an authorization code for credentials."""
        ...

    @abstractmethod
    async def refresh_tokens(self, refresh_token: str) -> Credentials:
        """Obtain a fresh access token."""
        ...

    @abstractmethod
    async def get_calendars(self, credentials: Credentials) -> list[CalendarMetadata]:
        """List calendars visible to the account."""
        ...

    @abstractmethod
    async def get_events(
        self,
        credentials: Credentials,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ExternalEvent]:
        """
        Get events within a time window.

        Recurring events are expanded to occurrences, pagination is exhausted
        and the result is sorted by start ascending.
        """
        ...

    @abstractmethod
    async def create_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        ...

    @abstractmethod
    async def update_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
        event: EventInput,
    ) -> ExternalEvent:
        ...

    @abstractmethod
    async def delete_event(
        self,
        credentials: Credentials,
        calendar_id: str,
        event_id: str,
    ) -> None:
        """Delete an event. Deleting an event that is already gone succeeds."""
        ...

    @abstractmethod
    async def validate_tokens(self, credentials: Credentials) -> bool:
        """Cheap read call confirming the credentials still work."""
        ...

    @abstractmethod
    async def revoke_tokens(self, credentials: Credentials) -> None:
        """Best-effort credential revocation."""
        ...
