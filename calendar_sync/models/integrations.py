"""
Calendar integration model.

One row per (user, provider) linking a user's account to exactly one external
calendar. Provider credentials are stored only as vault ciphertext.
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calendar_sync.models.base import BaseModel, UTCDateTime, get_json_type

if TYPE_CHECKING:
    from calendar_sync.models.events import CalendarEvent
    from calendar_sync.models.sync_logs import CalendarSyncLog


class CalendarIntegration(BaseModel):
    """
    A user's connection to an external calendar provider.

    Attributes:
        user_id: External user ID (from the surrounding application)
        provider: 'google', 'microsoft' or 'apple'
        provider_account_id: Account identifier on the provider side
        access_token: Vault ciphertext of the access token (CalDAV: bundled login)
        refresh_token: Vault ciphertext of the refresh token, if any
        token_expiry: When the access token expires (None = does not expire)
        calendar_id: The single external calendar this integration syncs
        sync_in_progress: Per-integration run lock
    """

    __tablename__ = "calendar_integrations"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="External user ID from the surrounding application"
    )

    provider: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Calendar provider: 'google', 'microsoft', 'apple'"
    )

    provider_account_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Account identifier on the provider side"
    )

    # Encrypted credentials
    access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Encrypted access token"
    )

    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Encrypted refresh token (OAuth providers only)"
    )

    token_expiry: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="When the access token expires"
    )

    # Calendar selection
    calendar_id: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        doc="External calendar ID (CalDAV: collection path)"
    )

    calendar_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Display name of the external calendar"
    )

    # Status
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether the integration is connected"
    )

    sync_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether scheduled sync runs include this integration"
    )

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="Completion time of the last successful sync run"
    )

    sync_errors: Mapped[Optional[list]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Errors from the most recent sync run"
    )

    settings: Mapped[Optional[dict]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Free-form integration preferences owned by the caller"
    )

    # Run lock
    sync_in_progress: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Set while a sync run owns this integration"
    )

    sync_lock_acquired_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="When the current run lock was taken"
    )

    # Relationships
    events: Mapped[list["CalendarEvent"]] = relationship(
        "CalendarEvent",
        back_populates="integration",
        cascade="all, delete-orphan",
        passive_deletes=True,
        doc="Canonical events owned by this integration"
    )

    sync_logs: Mapped[list["CalendarSyncLog"]] = relationship(
        "CalendarSyncLog",
        back_populates="integration",
        cascade="all, delete-orphan",
        passive_deletes=True,
        doc="Sync run audit trail"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_calendar_integration_user_provider"),
        Index("ix_calendar_integrations_user_id", "user_id"),
        Index("ix_calendar_integrations_provider", "provider"),
        Index("ix_calendar_integrations_active", "is_active", "sync_enabled"),
    )

    def __repr__(self) -> str:
        return (
            f"<CalendarIntegration(user_id={self.user_id}, provider={self.provider}, "
            f"calendar_id={self.calendar_id})>"
        )
