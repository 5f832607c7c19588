"""
Sync log model.

Append-only audit trail: one row per (integration, run).
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from calendar_sync.models.base import BaseModel, GUID, UTCDateTime, get_json_type

if TYPE_CHECKING:
    from calendar_sync.models.integrations import CalendarIntegration


# Run status
SYNC_STARTED = "started"
SYNC_COMPLETED = "completed"
SYNC_FAILED = "failed"

# Run phases (state machine persisted on the row)
PHASE_STARTED = "started"
PHASE_FETCHING_EXTERNAL = "fetching_external"
PHASE_DIFFING = "diffing"
PHASE_COMPLETED = "completed"
PHASE_FAILED = "failed"


class CalendarSyncLog(BaseModel):
    """
    Record of a single sync run for one integration.

    Written with status 'started' at launch and finalized exactly once as
    'completed' or 'failed' with aggregate counts and structured errors.
    """

    __tablename__ = "calendar_sync_logs"

    integration_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"),
        nullable=False,
        doc="Integration that was synced"
    )

    sync_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="incremental",
        doc="'incremental' (scheduled window) or 'manual'"
    )

    direction: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="bidirectional",
        doc="'import', 'export' or 'bidirectional'"
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=SYNC_STARTED,
        doc="'started', 'completed' or 'failed'"
    )

    phase: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=PHASE_STARTED,
        doc="Current step of the run"
    )

    events_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    events_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    events_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    events_deleted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    errors: Mapped[list] = mapped_column(
        get_json_type(),
        nullable=False,
        default=list,
        doc="Structured errors: [{event_id, message, code}]"
    )

    started_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        doc="When the run started"
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        doc="When the run was finalized"
    )

    duration_ms: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Run duration in milliseconds"
    )

    integration: Mapped["CalendarIntegration"] = relationship(
        "CalendarIntegration",
        back_populates="sync_logs",
    )

    __table_args__ = (
        Index("ix_calendar_sync_logs_integration", "integration_id"),
        Index("ix_calendar_sync_logs_status", "status"),
        Index("ix_calendar_sync_logs_started_at", "started_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CalendarSyncLog(integration_id={self.integration_id}, "
            f"status={self.status}, phase={self.phase})>"
        )
