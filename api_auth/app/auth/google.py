"""
Google OAuth 2.0 client.

This module handles the outbound side of the authorization code flow:
- Building the Google authorization URL
- Exchanging the authorization code for tokens
- Fetching the user's profile from the userinfo endpoint
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import ExternalIdentity, TokenSet

logger = logging.getLogger(__name__)

GOOGLE_SCOPES = "openid email profile"


# =============================================================================
# Exceptions
# =============================================================================

class IdentityProviderError(Exception):
    """Base exception for failed calls to the identity provider."""

    error_code = "unknown"


class TokenExchangeError(IdentityProviderError):
    """Authorization code could not be exchanged for tokens."""

    error_code = "token_exchange_failed"


class ProfileFetchError(IdentityProviderError):
    """User profile could not be fetched with the access token."""

    error_code = "profile_fetch_failed"


# =============================================================================
# Client
# =============================================================================

class GoogleOAuthClient:
    """
    Client for the Google authorization, token and userinfo endpoints.

    Each call opens its own ``httpx.AsyncClient`` with an explicit timeout.
    Calls are never retried: an authorization code is single use.

    Args:
        settings: Application settings (client credentials, endpoint URLs, timeout)
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in tests
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.GOOGLE_CLIENT_ID)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
        )

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        """
        Build the URL that starts the consent screen.

        Args:
            redirect_uri: Callback URL registered with Google
            state: Encoded CSRF state

        Returns:
            Absolute authorization URL
        """
        params = {
            "client_id": self.settings.GOOGLE_CLIENT_ID,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPES,
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{self.settings.GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback
            redirect_uri: Redirect URI (must match the one used at login)

        Returns:
            Parsed token set

        Raises:
            TokenExchangeError: Non-2xx response, network failure or invalid body
        """
        payload = {
            "code": code,
            "client_id": self.settings.GOOGLE_CLIENT_ID or "",
            "client_secret": self.settings.GOOGLE_CLIENT_SECRET or "",
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    self.settings.GOOGLE_TOKEN_URL,
                    data=payload,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange request failed: {e}")
            raise TokenExchangeError(f"Token exchange request failed: {e}") from e

        if not response.is_success:
            error_data = {}
            if response.headers.get("content-type", "").startswith("application/json"):
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}
            error_msg = (
                error_data.get("error_description")
                or error_data.get("error")
                or f"HTTP {response.status_code}"
            )
            logger.error(
                f"Token exchange failed: {error_msg}",
                extra={"status_code": response.status_code},
            )
            raise TokenExchangeError(f"Token exchange failed: {error_msg}")

        try:
            return TokenSet.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError("Token response missing access_token") from e

    async def fetch_profile(self, access_token: str) -> ExternalIdentity:
        """
        Fetch the user's profile with a bearer access token.

        Raises:
            ProfileFetchError: Non-2xx response, network failure or missing 'sub'
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    self.settings.GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Profile request failed: {e}")
            raise ProfileFetchError(f"Profile request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "Profile fetch failed",
                extra={"status_code": response.status_code},
            )
            raise ProfileFetchError(f"Profile fetch failed: HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProfileFetchError(f"Invalid profile response: {e}") from e

        if not isinstance(data, dict):
            raise ProfileFetchError("Profile response is not a JSON object")

        try:
            return ExternalIdentity.from_userinfo(data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise ProfileFetchError(f"Invalid profile response: {e}") from e
