"""
Base model definitions for SQLAlchemy.

Provides:
- GUID TypeDecorator for UUID support across SQLite and PostgreSQL
- BaseModel declarative base with common fields
- JSON/JSONB column factory function
- UTC normalization for timestamps read back from SQLite
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, JSON, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PostgreSQL_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import CHAR


class GUID(TypeDecorator):
    """
    UUID column portable between PostgreSQL and SQLite.

    PostgreSQL gets its native UUID type; SQLite stores the 32-character hex
    form. Values always come back as uuid.UUID.
    """

    impl = CHAR(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID())
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value) if dialect.name == "postgresql" else value.hex

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always comes back in UTC.

    SQLite drops tzinfo on storage, so values are normalized to UTC on the
    way in and re-tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return as_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return as_utc(value)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def get_json_type():
    """
    Get database-appropriate JSON column type.

    Returns:
        JSONB on PostgreSQL (with indexing support), JSON elsewhere
    """
    return JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        uuid.UUID: GUID,
    }


class BaseModel(Base):
    """
    Abstract base adding a UUID primary key and UTC audit timestamps.

    created_at is filled on insert, updated_at on every ORM update.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        primary_key=True,
        default=uuid.uuid4,
        doc="Row identifier"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        doc="When the row was inserted (UTC)"
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        onupdate=utcnow,
        nullable=True,
        doc="When the row was last changed through the ORM (UTC)"
    )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"
