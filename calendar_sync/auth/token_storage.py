"""
Token storage and refresh for calendar integrations.

Credentials live on CalendarIntegration rows as vault ciphertext; this module
is the only place that turns them back into usable plaintext, refreshing them
when they are about to expire.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from calendar_sync.auth.vault import CredentialVault
from calendar_sync.exceptions import TokenExpiredError
from calendar_sync.models.integrations import CalendarIntegration
from calendar_sync.providers.base import CalendarProvider, Credentials

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


def store_credentials(
    integration: CalendarIntegration,
    credentials: Credentials,
    vault: CredentialVault,
) -> None:
    """
    Encrypt credentials onto an integration row (not committed).

    A missing refresh token keeps the previously stored one.
    """
    access, refresh = vault.encrypt_credentials(credentials)
    integration.access_token = access
    if refresh:
        integration.refresh_token = refresh
    integration.token_expiry = credentials.expires_at


async def ensure_valid_tokens(
    session: AsyncSession,
    integration: CalendarIntegration,
    provider: CalendarProvider,
    vault: CredentialVault,
    buffer: timedelta = DEFAULT_REFRESH_BUFFER,
) -> Credentials:
    """
    Get usable credentials for an integration, refreshing if necessary.

    Tokens expiring more than `buffer` from now are returned as stored without
    contacting the provider. Otherwise the provider's refresh endpoint is
    called and the new ciphertext and expiry are committed before the
    plaintext credentials are returned.

    Args:
        session: Database session the integration is attached to
        integration: Integration whose credentials are needed
        provider: Provider adapter for the integration
        vault: Credential vault
        buffer: Refresh window before expiry

    Returns:
        Valid plaintext credentials

    Raises:
        TokenExpiredError: Token is within the buffer and there is no refresh token
        DecryptionError: Stored ciphertext cannot be decrypted
        AuthError: Provider rejected the refresh token
    """
    credentials = vault.decrypt_credentials(integration)

    if not credentials.expires_within(buffer):
        return credentials

    if not credentials.refresh_token:
        logger.warning(
            f"Token expired and no refresh token for integration {integration.id}"
        )
        raise TokenExpiredError(
            f"Access token for integration {integration.id} expired and cannot be refreshed"
        )

    refreshed = await provider.refresh_tokens(credentials.refresh_token)
    if not refreshed.refresh_token:
        refreshed.refresh_token = credentials.refresh_token

    store_credentials(integration, refreshed, vault)
    await session.commit()

    logger.info(f"Refreshed access token for integration {integration.id}")
    return refreshed
