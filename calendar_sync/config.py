"""
Configuration management for the calendar sync engine.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from calendar_sync.exceptions import ConfigurationError

ProviderName = Literal["google", "microsoft", "apple"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/calendar_sync.db",
        description="Database connection URL"
    )

    # Credential vault
    encryption_key: str = Field(
        default="",
        description="Base64-encoded 32-byte key used to encrypt provider credentials"
    )

    # Providers
    enabled_providers: list[ProviderName] = Field(
        default=["google", "microsoft", "apple"],
        description="Calendar providers registered at startup"
    )

    # Google OAuth Configuration
    google_oauth_client_id: str = Field(
        default="",
        description="Google OAuth 2.0 client ID"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="Google OAuth 2.0 client secret"
    )

    # Microsoft identity platform
    microsoft_client_id: str = Field(
        default="",
        description="Microsoft Entra application (client) ID"
    )
    microsoft_client_secret: str = Field(
        default="",
        description="Microsoft Entra client secret"
    )
    microsoft_tenant_id: str = Field(
        default="common",
        description="Microsoft tenant (common, organizations, consumers or a tenant id)"
    )

    # CalDAV
    caldav_default_server_url: str = Field(
        default="https://caldav.icloud.com",
        description="CalDAV server used when the user does not supply one"
    )

    # Sync behaviour
    sync_lookback_days: int = Field(
        default=30,
        description="Days before now included in the default sync window"
    )
    sync_lookahead_days: int = Field(
        default=90,
        description="Days after now included in the default sync window"
    )
    token_refresh_buffer_minutes: int = Field(
        default=5,
        description="Refresh access tokens expiring within this many minutes"
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every call to an external provider"
    )
    sync_run_timeout_seconds: float = Field(
        default=600.0,
        description="Overall time budget for one integration's sync run"
    )
    sync_lock_grace_seconds: float = Field(
        default=120.0,
        description="Time past the run budget before a held lock or started sync log counts as abandoned"
    )
    sync_max_concurrency: int = Field(
        default=4,
        description="Maximum number of integrations synced at the same time"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    calendar_redirect_base_url: str = Field(
        default="http://localhost:3000/calendar/callback",
        description="Base URL the OAuth providers redirect back to (provider is appended)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    @property
    def uses_google_oauth(self) -> bool:
        """Check if Google OAuth is configured."""
        return bool(self.google_oauth_client_id and self.google_oauth_client_secret)

    @property
    def uses_microsoft_oauth(self) -> bool:
        """Check if Microsoft OAuth is configured."""
        return bool(self.microsoft_client_id and self.microsoft_client_secret)

    def redirect_uri_for(self, provider: str) -> str:
        """Build the OAuth redirect URI for a provider."""
        return f"{self.calendar_redirect_base_url.rstrip('/')}/{provider}"

    def validate_provider_config(self) -> None:
        """
        Validate configuration for every enabled provider.

        Raises:
            ConfigurationError: If an enabled OAuth provider lacks credentials
        """
        errors = []

        if "google" in self.enabled_providers and not self.uses_google_oauth:
            errors.append(
                "Google Calendar requires GOOGLE_OAUTH_CLIENT_ID and "
                "GOOGLE_OAUTH_CLIENT_SECRET."
            )

        if "microsoft" in self.enabled_providers and not self.uses_microsoft_oauth:
            errors.append(
                "Microsoft Calendar requires MICROSOFT_CLIENT_ID and "
                "MICROSOFT_CLIENT_SECRET."
            )

        if not self.encryption_key:
            errors.append("ENCRYPTION_KEY is required to store provider credentials.")

        if errors:
            raise ConfigurationError(
                "Calendar provider configuration errors:\n- " + "\n- ".join(errors)
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from calendar_sync.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()
