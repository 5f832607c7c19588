"""
OAuth 2.0 authorization code flow shared by the OAuth-based providers.

Implements:
1. Build authorization URL -> user redirected to the provider (state = user id)
2. Exchange code for tokens -> access_token + refresh_token
3. Refresh access_token when expiring, keeping the refresh token if none is returned
4. Best-effort token revocation where the provider has an endpoint for it
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from calendar_sync.exceptions import AuthError, ProviderAPIError
from calendar_sync.providers.base import Credentials

logger = logging.getLogger(__name__)


def raise_for_oauth_error(response: httpx.Response, action: str) -> None:
    """
    Convert a failed token endpoint response into an engine exception.

    400/401 mean the code, refresh token or redirect URI was rejected.
    """
    if response.is_success:
        return

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    reason = payload.get("error_description") or payload.get("error") or response.reason_phrase

    if response.status_code in (400, 401):
        raise AuthError(f"{action} rejected: {reason}")

    raise ProviderAPIError(
        f"{action} failed ({response.status_code}): {reason}",
        status_code=response.status_code,
    )


class OAuthFlow:
    """
    Manages one provider's OAuth 2.0 endpoints.

    Usage:
        flow = OAuthFlow(
            authorize_url=..., token_url=...,
            client_id=..., client_secret=..., scopes=[...],
        )
        url = flow.get_authorization_url(state=user_id, redirect_uri=redirect)
        credentials = await flow.exchange_code(code, redirect)
        credentials = await flow.refresh_token(credentials.refresh_token)
    """

    def __init__(
        self,
        authorize_url: str,
        token_url: str,
        client_id: str,
        client_secret: str,
        scopes: list[str],
        extra_auth_params: Optional[dict] = None,
        revoke_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes
        self.extra_auth_params = extra_auth_params or {}
        self.revoke_url = revoke_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def get_authorization_url(self, state: str, redirect_uri: str) -> str:
        """
        Generate the authorization URL.

        Args:
            state: Opaque correlation value returned on the callback (the user id)
            redirect_uri: Callback URL registered with the provider

        Returns:
            URL to redirect the user to
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            **self.extra_auth_params,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _post_token(self, data: dict, action: str) -> dict:
        try:
            async with self._client() as client:
                response = await client.post(self.token_url, data=data)
        except httpx.RequestError as e:
            raise ProviderAPIError(f"{action} failed: {e}", original_error=e)

        raise_for_oauth_error(response, action)
        return response.json()

    async def exchange_code(self, code: str, redirect_uri: str) -> Credentials:
        """
        Exchange an authorization code for tokens.

        Raises:
            AuthError: Code rejected or redirect URI mismatch
            ProviderAPIError: Token endpoint unavailable
        """
        token_data = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
            "Authorization code exchange",
        )

        logger.info("Successfully exchanged authorization code for tokens")
        return Credentials.from_token_response(token_data)

    async def refresh_token(self, refresh_token: str) -> Credentials:
        """
        Refresh an expiring access token.

        Raises:
            AuthError: Refresh token revoked or invalid
        """
        token_data = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            "Token refresh",
        )

        logger.info("Successfully refreshed access token")
        return Credentials.from_token_response(
            token_data,
            fallback_refresh_token=refresh_token,
        )

    async def revoke(self, token: str) -> None:
        """Revoke a token at the provider's revocation endpoint, if it has one."""
        if not self.revoke_url:
            logger.info("Provider has no token revocation endpoint; skipping")
            return

        try:
            async with self._client() as client:
                response = await client.post(self.revoke_url, data={"token": token})
        except httpx.RequestError as e:
            raise ProviderAPIError(f"Token revocation failed: {e}", original_error=e)

        raise_for_oauth_error(response, "Token revocation")
        logger.info("Revoked provider token")
