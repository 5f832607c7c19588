"""
Unit tests for the provider registry.
"""

import pytest

from calendar_sync.config import Settings
from calendar_sync.exceptions import ConfigurationError, UnsupportedProviderError
from calendar_sync.providers.apple import AppleCalendarProvider
from calendar_sync.providers.google import GoogleCalendarProvider
from calendar_sync.providers.microsoft import MicrosoftCalendarProvider
from calendar_sync.providers.registry import ProviderRegistry, build_provider_registry


class TestProviderRegistry:
    """Test ProviderRegistry lookups."""

    def test_get_registered(self, mock_provider):
        """Registered providers should be returned by name."""
        registry = ProviderRegistry({"google": mock_provider})

        assert registry.get("google") is mock_provider
        assert "google" in registry
        assert registry.names() == ["google"]
        assert len(registry) == 1

    def test_get_unregistered(self, mock_provider):
        """Unknown providers should raise UnsupportedProviderError."""
        registry = ProviderRegistry({"google": mock_provider})

        with pytest.raises(UnsupportedProviderError):
            registry.get("yahoo")

    def test_registry_is_a_copy(self, mock_provider):
        """Mutating the source mapping should not affect the registry."""
        providers = {"google": mock_provider}
        registry = ProviderRegistry(providers)

        providers["microsoft"] = mock_provider

        assert "microsoft" not in registry


class TestBuildProviderRegistry:
    """Test build_provider_registry()."""

    def test_all_providers(self, settings):
        """Every enabled provider should be registered."""
        registry = build_provider_registry(settings)

        assert list(registry) == ["google", "microsoft", "apple"]
        assert isinstance(registry.get("google"), GoogleCalendarProvider)
        assert isinstance(registry.get("microsoft"), MicrosoftCalendarProvider)
        assert isinstance(registry.get("apple"), AppleCalendarProvider)

    def test_subset(self, encryption_key):
        """Only enabled providers should be registered."""
        settings = Settings(
            _env_file=None,
            enabled_providers=["apple"],
            encryption_key=encryption_key,
        )

        registry = build_provider_registry(settings)

        assert registry.names() == ["apple"]

    def test_missing_configuration(self, encryption_key):
        """Misconfigured providers should fail at startup."""
        settings = Settings(
            _env_file=None,
            enabled_providers=["microsoft"],
            encryption_key=encryption_key,
        )

        with pytest.raises(ConfigurationError):
            build_provider_registry(settings)
