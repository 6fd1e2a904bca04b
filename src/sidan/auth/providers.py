"""OAuth provider interface and shared token-endpoint logic.

This module provides the pluggable upstream provider system:
- Authorization URL construction with PKCE (S256)
- Code exchange and token refresh via authlib's httpx client
- Canonical user identity (UserInfo) returned by every adapter

Adapters live in provider_google.py and provider_github.py.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from loguru import logger
from pydantic import BaseModel, Field

from sidan.auth.errors import CodeExchangeFailed, TokenRefreshFailed, UserInfoFailed


class UserInfo(BaseModel):
    """Canonical identity returned by a provider.

    Providers map their user-info responses to this common model.
    """

    provider_user_id: str = Field(description="Provider's stable user id")
    email: str = Field(default="", description="Selected email address")
    email_verified: bool = Field(default=False, description="Provider verified the email")
    name: str | None = Field(default=None, description="Display name")
    picture: str | None = Field(default=None, description="Avatar URL")


class ProviderTokenSet(BaseModel):
    """Plaintext token-endpoint result (never persisted as-is)."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_at: datetime | None = None

    @classmethod
    def from_response(cls, token: Mapping[str, Any]) -> "ProviderTokenSet":
        """Build from a token-endpoint JSON response.

        Raises:
            ValueError: Response has no access_token
        """
        access_token = token.get("access_token")
        if not access_token:
            raise ValueError("token response missing access_token")

        expires_at = None
        if token.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(token["expires_at"]), tz=timezone.utc)
        elif token.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(token["expires_in"]))

        return cls(
            access_token=access_token,
            refresh_token=token.get("refresh_token") or None,
            token_type=token.get("token_type") or "Bearer",
            expires_at=expires_at,
        )


class ProviderConfig(BaseModel):
    """Endpoints and client credentials for one provider."""

    name: str
    client_id: str
    client_secret: str
    redirect_url: str
    scopes: list[str] = Field(default_factory=list)
    auth_url: str
    token_url: str
    userinfo_url: str


class OAuthProvider(ABC):
    """Abstract upstream OAuth2 provider.

    Subclasses declare their endpoints and translate user-info responses;
    the authorization URL, code exchange and refresh are shared.
    """

    name: str = ""
    auth_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    default_scopes: list[str] = []

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        scopes: list[str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize provider.

        Args:
            client_id: OAuth client ID
            client_secret: OAuth client secret
            redirect_url: Registered callback URL
            scopes: Requested scopes (provider defaults when empty)
            timeout: Timeout for every outbound call in seconds
            transport: Optional httpx transport (tests)
        """
        self.config = ProviderConfig(
            name=self.name,
            client_id=client_id,
            client_secret=client_secret,
            redirect_url=redirect_url,
            scopes=scopes or list(self.default_scopes),
            auth_url=self.auth_url,
            token_url=self.token_url,
            userinfo_url=self.userinfo_url,
        )
        self.timeout = timeout
        self._transport = transport

    def get_provider_name(self) -> str:
        return self.name

    def extra_auth_params(self) -> dict[str, str]:
        """Provider-specific authorization URL parameters."""
        return {}

    def build_auth_url(self, state: str, code_challenge: str) -> str:
        """Build the upstream authorization URL.

        Args:
            state: CSRF nonce echoed back on callback
            code_challenge: PKCE S256 challenge

        Returns:
            Authorization URL to redirect the browser to
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_url,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            **self.extra_auth_params(),
        }
        return f"{self.config.auth_url}?{urlencode(params)}"

    def _oauth_client(self) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            token_endpoint_auth_method="client_secret_post",
            redirect_uri=self.config.redirect_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def exchange_code(self, code: str, code_verifier: str) -> ProviderTokenSet:
        """Exchange an authorization code, proving possession of the PKCE verifier.

        Raises:
            CodeExchangeFailed: Token endpoint rejected or was unreachable
        """
        try:
            async with self._oauth_client() as client:
                token = await client.fetch_token(
                    self.config.token_url,
                    grant_type="authorization_code",
                    code=code,
                    code_verifier=code_verifier,
                )
            return ProviderTokenSet.from_response(token)
        except (AuthlibBaseError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Code exchange failed for {self.name}: {type(e).__name__}")
            raise CodeExchangeFailed(f"code exchange failed: {e}") from e

    async def refresh_token(self, refresh_token: str) -> ProviderTokenSet:
        """Obtain a new access token with a stored refresh token.

        Sends only client_id, client_secret and refresh_token.

        Raises:
            TokenRefreshFailed: Token endpoint rejected or was unreachable
        """
        try:
            async with self._oauth_client() as client:
                token = await client.refresh_token(
                    self.config.token_url,
                    refresh_token=refresh_token,
                )
            return ProviderTokenSet.from_response(token)
        except (AuthlibBaseError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Token refresh failed for {self.name}: {type(e).__name__}")
            raise TokenRefreshFailed(f"token refresh failed: {e}") from e

    async def _get_json(self, client: httpx.AsyncClient, url: str, access_token: str) -> Any:
        """GET a provider API resource on behalf of the user.

        Raises:
            UserInfoFailed: Non-200 response, transport error or invalid JSON
        """
        try:
            response = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise UserInfoFailed(f"userinfo request failed: {e}") from e

        if response.status_code != 200:
            raise UserInfoFailed(f"userinfo request failed: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise UserInfoFailed("userinfo response is not JSON") from e

    @abstractmethod
    async def fetch_user_info(self, access_token: str) -> UserInfo:
        """Fetch the user's identity from the provider.

        Args:
            access_token: Upstream access token

        Returns:
            Canonical UserInfo

        Raises:
            UserInfoFailed: Provider call failed
            NoVerifiedEmail: Provider has no verified email for the user
        """
        pass
