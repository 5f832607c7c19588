"""
Pytest configuration and fixtures for calendar sync tests.

Provides a file-backed SQLite store (aiosqlite), a credential vault, settings,
a mocked calendar provider and a CalendarManager wired to all of them.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from calendar_sync.auth.vault import CredentialVault
from calendar_sync.config import Settings
from calendar_sync.database import create_engine_for_url, create_session_factory, init_db
from calendar_sync.models.base import utcnow
from calendar_sync.models.events import CalendarEvent, SYNC_STATUS_SYNCED
from calendar_sync.providers.base import CalendarMetadata, Credentials
from calendar_sync.providers.registry import ProviderRegistry
from calendar_sync.services.calendar_manager import CalendarManager


@pytest.fixture
def encryption_key() -> str:
    return CredentialVault.generate_key()


@pytest.fixture
def vault(encryption_key) -> CredentialVault:
    return CredentialVault(encryption_key)


@pytest.fixture
def settings(encryption_key, tmp_path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'calendar_sync.db'}",
        encryption_key=encryption_key,
        google_oauth_client_id="google-client-id",
        google_oauth_client_secret="google-client-secret",
        microsoft_client_id="microsoft-client-id",
        microsoft_client_secret="microsoft-client-secret",
        sync_max_concurrency=1,
        sync_run_timeout_seconds=30,
    )


@pytest_asyncio.fixture
async def engine(settings):
    """
    Create a clean file-backed SQLite database for each test.

    A file (not :memory:) so that every session from the factory sees the
    same database.
    """
    engine = create_engine_for_url(settings.database_url)
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


def make_credentials(
    access_token: str = "access-token-1",
    refresh_token: str | None = "refresh-token-1",
    expires_in: timedelta | None = timedelta(hours=1),
) -> Credentials:
    """Build plaintext credentials expiring `expires_in` from now."""
    return Credentials(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=utcnow() + expires_in if expires_in is not None else None,
    )


@pytest.fixture
def mock_provider():
    """
    Mocked CalendarProvider registered as 'google'.

    Defaults: the code exchange returns fresh credentials, the account has a
    single primary calendar, and there are no external events.
    """
    provider = MagicMock()
    provider.name = "google"
    provider.get_auth_url.return_value = "https://accounts.example.com/auth?state=user-1"
    provider.exchange_code_for_tokens = AsyncMock(return_value=make_credentials())
    provider.refresh_tokens = AsyncMock(
        return_value=make_credentials(access_token="access-token-2", refresh_token=None)
    )
    provider.get_calendars = AsyncMock(return_value=[
        CalendarMetadata(id="team@example.com", name="Team", access_role="reader"),
        CalendarMetadata(id="primary", name="Work", is_primary=True, access_role="owner"),
    ])
    provider.get_events = AsyncMock(return_value=[])
    provider.create_event = AsyncMock()
    provider.update_event = AsyncMock()
    provider.delete_event = AsyncMock(return_value=None)
    provider.validate_tokens = AsyncMock(return_value=True)
    provider.revoke_tokens = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def registry(mock_provider) -> ProviderRegistry:
    return ProviderRegistry({"google": mock_provider})


@pytest.fixture
def manager(session_factory, registry, vault, settings) -> CalendarManager:
    return CalendarManager(
        session_factory=session_factory,
        registry=registry,
        vault=vault,
        settings=settings,
    )


@pytest_asyncio.fixture
async def integration(manager):
    """A connected Google integration for user-1."""
    return await manager.connect_calendar("user-1", "google", "auth-code")


@pytest.fixture
def event_factory(session_factory):
    """
    Factory storing a canonical event directly.

    Usage:
        event = await event_factory(integration.id, "evt-1", start=..., title="x")
    """
    async def create(
        integration_id,
        provider_event_id: str,
        start: datetime = datetime(2026, 3, 15, 10, tzinfo=timezone.utc),
        duration: timedelta = timedelta(hours=1),
        **fields,
    ) -> CalendarEvent:
        values = dict(
            title="Local event",
            timezone="UTC",
            attendees=[],
            status="confirmed",
            sync_status=SYNC_STATUS_SYNCED,
        )
        values.update(fields)
        event = CalendarEvent(
            integration_id=integration_id,
            provider_event_id=provider_event_id,
            start_time=start,
            end_time=start + duration,
            **values,
        )
        async with session_factory() as session:
            session.add(event)
            await session.commit()
        return event

    return create
