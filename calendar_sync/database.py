"""
Async engine and session factory.

Provides:
- Engine creation for SQLite (aiosqlite) and PostgreSQL (asyncpg) URLs
- The session factory the calendar manager opens one session per unit of work from
- Schema creation for development and tests (production uses Alembic)
"""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from calendar_sync.config import get_settings

logger = logging.getLogger(__name__)

_ASYNC_DRIVERS = {
    "sqlite:///": "sqlite+aiosqlite:///",
    "postgresql://": "postgresql+asyncpg://",
}


def get_async_database_url(url: str) -> str:
    """Swap a plain sqlite/postgresql URL for its async driver URL."""
    for plain, driver in _ASYNC_DRIVERS.items():
        if url.startswith(plain):
            return driver + url[len(plain):]
    return url


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for a database URL.

    SQLite connections get foreign keys switched on so that deleting an
    integration cascades to its events and sync logs. PostgreSQL gets a
    small pre-pinged pool.
    """
    async_url = get_async_database_url(database_url)

    if not async_url.startswith("sqlite"):
        return create_async_engine(
            async_url,
            pool_size=5,
            pool_recycle=3600,
            pool_pre_ping=True,
            echo=echo,
        )

    engine = create_async_engine(async_url, echo=echo)

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Rows stay readable after commit; sync passes keep using them
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache()
def get_engine() -> AsyncEngine:
    """Process-wide engine built from settings."""
    settings = get_settings()
    return create_engine_for_url(settings.database_url, echo=settings.log_level == "DEBUG")


@lru_cache()
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return create_session_factory(get_engine())


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create every table that does not exist yet."""
    from calendar_sync.models.base import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Calendar sync tables created")
