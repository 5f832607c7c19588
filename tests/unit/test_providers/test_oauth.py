"""
Unit tests for the shared OAuth 2.0 flow and HTTP error mapping.

Token endpoints are served by httpx.MockTransport.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from calendar_sync.exceptions import (
    AuthError,
    ProviderAPIError,
    ProviderNotFoundError,
    ProviderPermissionError,
    RateLimitError,
)
from calendar_sync.providers.http import _is_retryable_error, raise_for_status
from calendar_sync.providers.oauth import OAuthFlow


def make_flow(handler, revoke_url=None) -> OAuthFlow:
    return OAuthFlow(
        authorize_url="https://auth.example.com/authorize",
        token_url="https://auth.example.com/token",
        client_id="client-id",
        client_secret="client-secret",
        scopes=["calendar.read", "calendar.write"],
        extra_auth_params={"access_type": "offline"},
        revoke_url=revoke_url,
        transport=httpx.MockTransport(handler),
    )


def form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestAuthorizationUrl:
    """Test get_authorization_url()."""

    def test_url_contains_parameters(self):
        """URL should carry client id, redirect, scopes, state and extras."""
        flow = make_flow(lambda request: httpx.Response(200))

        url = flow.get_authorization_url("user-42", "https://app.example.com/cb")
        params = parse_qs(urlparse(url).query)

        assert url.startswith("https://auth.example.com/authorize?")
        assert params["client_id"] == ["client-id"]
        assert params["redirect_uri"] == ["https://app.example.com/cb"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["calendar.read calendar.write"]
        assert params["state"] == ["user-42"]
        assert params["access_type"] == ["offline"]


class TestExchangeCode:
    """Test exchange_code()."""

    @pytest.mark.asyncio
    async def test_successful_exchange(self):
        """A successful exchange should return credentials with expiry."""
        captured = {}

        def handler(request):
            captured.update(form(request))
            return httpx.Response(200, json={
                "access_token": "access",
                "refresh_token": "refresh",
                "expires_in": 3600,
                "scope": "calendar.read",
            })

        credentials = await make_flow(handler).exchange_code("code-1", "https://cb")

        assert captured["grant_type"] == "authorization_code"
        assert captured["code"] == "code-1"
        assert captured["redirect_uri"] == "https://cb"
        assert credentials.access_token == "access"
        assert credentials.refresh_token == "refresh"
        assert credentials.expires_at is not None

    @pytest.mark.asyncio
    async def test_rejected_code(self):
        """invalid_grant should raise AuthError."""
        def handler(request):
            return httpx.Response(400, json={
                "error": "invalid_grant",
                "error_description": "Code was already redeemed.",
            })

        with pytest.raises(AuthError) as exc_info:
            await make_flow(handler).exchange_code("used", "https://cb")

        assert "already redeemed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error(self):
        """5xx from the token endpoint should raise a retryable ProviderAPIError."""
        flow = make_flow(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(ProviderAPIError) as exc_info:
            await flow.exchange_code("code", "https://cb")

        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_network_failure(self):
        """Transport errors should surface as ProviderAPIError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderAPIError):
            await make_flow(handler).exchange_code("code", "https://cb")


class TestRefreshToken:
    """Test refresh_token()."""

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token(self):
        """Responses without refresh_token should keep the original one."""
        def handler(request):
            assert form(request)["grant_type"] == "refresh_token"
            return httpx.Response(200, json={"access_token": "new", "expires_in": 3600})

        credentials = await make_flow(handler).refresh_token("refresh-1")

        assert credentials.access_token == "new"
        assert credentials.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_refresh_rotated(self):
        """A rotated refresh token should replace the old one."""
        def handler(request):
            return httpx.Response(200, json={
                "access_token": "new",
                "refresh_token": "refresh-2",
                "expires_in": 3600,
            })

        credentials = await make_flow(handler).refresh_token("refresh-1")

        assert credentials.refresh_token == "refresh-2"

    @pytest.mark.asyncio
    async def test_refresh_revoked(self):
        """A revoked refresh token should raise AuthError."""
        flow = make_flow(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(AuthError):
            await flow.refresh_token("revoked")


class TestRevoke:
    """Test revoke()."""

    @pytest.mark.asyncio
    async def test_revoke_posts_token(self):
        """Tokens should be posted to the revocation endpoint."""
        seen = []

        def handler(request):
            seen.append((str(request.url), form(request)))
            return httpx.Response(200)

        await make_flow(handler, revoke_url="https://auth.example.com/revoke").revoke("tok")

        assert seen == [("https://auth.example.com/revoke", {"token": "tok"})]

    @pytest.mark.asyncio
    async def test_revoke_without_endpoint(self):
        """Providers without a revocation endpoint should make no request."""
        def handler(request):
            raise AssertionError("no request expected")

        await make_flow(handler).revoke("tok")


class TestRaiseForStatus:
    """Test HTTP status mapping."""

    @pytest.mark.parametrize("status,exc_type", [
        (401, AuthError),
        (403, ProviderPermissionError),
        (404, ProviderNotFoundError),
        (410, ProviderNotFoundError),
        (429, RateLimitError),
        (500, ProviderAPIError),
    ])
    def test_status_mapping(self, status, exc_type):
        """Each error status should map to its exception type."""
        response = httpx.Response(
            status, request=httpx.Request("GET", "https://api.example.com")
        )

        with pytest.raises(exc_type):
            raise_for_status(response, "Example API")

    def test_success_passes(self):
        """2xx responses should not raise."""
        raise_for_status(httpx.Response(204), "Example API")

    def test_retryable_classification(self):
        """Rate limits and 5xx retry; client errors do not."""
        assert _is_retryable_error(RateLimitError("slow down")) is True
        assert _is_retryable_error(ProviderAPIError("boom", status_code=502)) is True
        assert _is_retryable_error(ProviderNotFoundError("gone", status_code=404)) is False
        assert _is_retryable_error(AuthError("nope")) is False
        assert _is_retryable_error(ValueError("other")) is False
