"""
Alembic environment configuration for the calendar sync engine.

Migrations run through the same async engine factory as the application, so
sqlite:/// and postgresql:// URLs use aiosqlite and asyncpg respectively.
"""

import asyncio
import logging
from logging.config import fileConfig

from sqlalchemy.engine import Connection

from alembic import context

# Import application config to get database URL
from calendar_sync.config import get_settings
from calendar_sync.database import create_engine_for_url

# Import Base for autogenerate support
from calendar_sync.models.base import Base

# Import all models so Alembic can detect them for autogenerate
from calendar_sync.models.integrations import CalendarIntegration  # noqa: F401
from calendar_sync.models.events import CalendarEvent  # noqa: F401
from calendar_sync.models.sync_logs import CalendarSyncLog  # noqa: F401

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Get database URL from application settings (overrides alembic.ini)
settings = get_settings()
config.set_main_option("sqlalchemy.url", settings.database_url)

# Set target metadata for autogenerate
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Emits SQL to the script output without connecting to the database.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # Required for SQLite ALTER TABLE support
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,  # Required for SQLite ALTER TABLE support
        compare_type=True,  # Detect column type changes
        compare_server_default=True,  # Detect server default changes
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode over the async engine."""
    connectable = create_engine_for_url(config.get_main_option("sqlalchemy.url"))

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


# Determine which mode to run in
if context.is_offline_mode():
    logger.info("Running migrations offline")
    run_migrations_offline()
else:
    logger.info("Running migrations online")
    asyncio.run(run_migrations_online())
