"""
Authentication module for the calendar sync engine.

Provides the credential vault and token refresh for provider integrations.
"""

from calendar_sync.auth.vault import CredentialVault
from calendar_sync.auth.token_storage import (
    DEFAULT_REFRESH_BUFFER,
    ensure_valid_tokens,
    store_credentials,
)

__all__ = [
    "CredentialVault",
    "DEFAULT_REFRESH_BUFFER",
    "ensure_valid_tokens",
    "store_credentials",
]
