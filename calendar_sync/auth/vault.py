"""
Credential vault.

AES-256-GCM encryption of provider credentials at rest. Each call uses a
fresh random nonce, so identical plaintext never encrypts to the same record.

Record format: "v1:<base64 nonce>:<base64 ciphertext||tag>"
"""

import base64
import binascii
import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from calendar_sync.exceptions import DecryptionError, EncryptionError
from calendar_sync.models.integrations import CalendarIntegration
from calendar_sync.providers.base import Credentials

logger = logging.getLogger(__name__)

# Encryption constants
KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12
RECORD_VERSION = "v1"


class CredentialVault:
    """
    Encrypts and decrypts provider credentials.

    The key is read once at construction and never changes afterwards.

    Usage:
        vault = CredentialVault(settings.encryption_key)
        record = vault.encrypt("ya29.token")
        vault.decrypt(record)  # "ya29.token"
    """

    def __init__(self, key: Optional[str]):
        self._aesgcm = AESGCM(self._decode_key(key))

    @staticmethod
    def _decode_key(key: Optional[str]) -> bytes:
        if not key:
            raise EncryptionError("ENCRYPTION_KEY is not configured")

        try:
            raw = base64.b64decode(key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise EncryptionError("ENCRYPTION_KEY is not valid base64", original_error=e)

        if len(raw) != KEY_SIZE:
            raise EncryptionError(
                f"ENCRYPTION_KEY must decode to {KEY_SIZE} bytes, got {len(raw)}"
            )
        return raw

    @staticmethod
    def generate_key() -> str:
        """Generate a new base64-encoded key suitable for ENCRYPTION_KEY."""
        return base64.b64encode(secrets.token_bytes(KEY_SIZE)).decode("ascii")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a non-empty string.

        Raises:
            EncryptionError: If plaintext is empty
        """
        if not plaintext:
            raise EncryptionError("Refusing to encrypt an empty value")

        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)

        return ":".join([
            RECORD_VERSION,
            base64.b64encode(nonce).decode("ascii"),
            base64.b64encode(ciphertext).decode("ascii"),
        ])

    def decrypt(self, record: str) -> str:
        """
        Decrypt a record produced by encrypt().

        Raises:
            DecryptionError: On unknown format, malformed nonce or tampered data
        """
        parts = record.split(":") if record else []
        if len(parts) != 3 or parts[0] != RECORD_VERSION:
            raise DecryptionError("Unrecognized credential record format")

        try:
            nonce = base64.b64decode(parts[1], validate=True)
            ciphertext = base64.b64decode(parts[2], validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Credential record is not valid base64", original_error=e)

        if len(nonce) != NONCE_SIZE:
            raise DecryptionError("Credential record has a malformed nonce")

        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Decryption failed: invalid tag or corrupted data", original_error=e
            )

        return plaintext.decode("utf-8")

    def encrypt_credentials(self, credentials: Credentials) -> tuple[str, Optional[str]]:
        """Encrypt access and refresh tokens for storage on an integration."""
        access = self.encrypt(credentials.access_token)
        refresh = (
            self.encrypt(credentials.refresh_token)
            if credentials.refresh_token
            else None
        )
        return access, refresh

    def decrypt_credentials(self, integration: CalendarIntegration) -> Credentials:
        """Decrypt the stored credentials of an integration."""
        return Credentials(
            access_token=self.decrypt(integration.access_token),
            refresh_token=(
                self.decrypt(integration.refresh_token)
                if integration.refresh_token
                else None
            ),
            expires_at=integration.token_expiry,
        )
