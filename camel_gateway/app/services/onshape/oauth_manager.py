"""
Onshape OAuth Manager

Handles the OAuth 2.0 authorization-code flow against Onshape and the
refresh-token exchange used when an access token is rejected.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urlencode

import httpx

from camel_gateway.app.core.config import GatewaySettings

logger = logging.getLogger(__name__)


class TokenExchangeError(Exception):
    """Token endpoint refused a code or refresh token"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class TokenPair:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "TokenPair":
        access_token = data.get("access_token")
        if not access_token:
            raise TokenExchangeError("Token response did not include an access token")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
        )


class TokenProvider(Protocol):
    """Source of access tokens for the refresh interceptor and sign-in"""

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> TokenPair:
        ...

    async def refresh_access_token(self, refresh_token: str) -> TokenPair:
        ...


class OnshapeOAuthManager:
    """
    Manages the Onshape OAuth 2.0 flow

    Responsibilities:
    - Generate and validate OAuth state tokens (CSRF protection)
    - Build Onshape authorization URLs
    - Exchange authorization codes and refresh tokens for access tokens
    - Fetch the signed-in user's profile
    """

    STATE_TTL = timedelta(minutes=10)

    def __init__(self, settings: GatewaySettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.evaluation_timeout_seconds)
        self._owns_client = http_client is None

        # OAuth state storage (in-memory, expires after 10 minutes)
        self._oauth_states: Dict[str, Dict[str, Any]] = {}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def generate_state_token(self, return_to: Optional[str] = None) -> str:
        """
        Generate a state token that remembers where to go after sign-in

        Args:
            return_to: URL to redirect to once the flow completes

        Returns:
            Opaque state token
        """
        self._expire_states()
        state_token = secrets.token_urlsafe(32)
        self._oauth_states[state_token] = {
            "return_to": return_to,
            "expires_at": datetime.now() + self.STATE_TTL,
        }
        return state_token

    def consume_state_token(self, state_token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Validate and forget a state token, returns its data if it was valid"""
        if not state_token:
            return None
        state_data = self._oauth_states.pop(state_token, None)
        if state_data is None or datetime.now() > state_data["expires_at"]:
            return None
        return state_data

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.settings.client_id or "",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        return f"{self.settings.authorization_url}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> TokenPair:
        """
        Exchange authorization code for an access/refresh token pair

        Raises:
            TokenExchangeError: If the token endpoint rejects the code
        """
        token_response = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        logger.info("Successfully exchanged authorization code for access token")
        return TokenPair.from_response(token_response)

    async def refresh_access_token(self, refresh_token: str) -> TokenPair:
        """
        Exchange refresh token for a new token pair

        Raises:
            TokenExchangeError: If the token endpoint rejects the refresh token
        """
        token_response = await self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        logger.info("Successfully refreshed access token")
        return TokenPair.from_response(token_response)

    async def fetch_user_profile(self, access_token: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(
                self.settings.user_profile_url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"User profile request failed: {e}") from e
        if response.status_code != 200:
            raise TokenExchangeError(
                f"User profile request failed: {response.status_code}", response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise TokenExchangeError("User profile endpoint returned invalid JSON") from e

    async def _post_token(self, token_data: Dict[str, str]) -> Dict[str, Any]:
        if not self.settings.has_client_credentials:
            raise TokenExchangeError("Onshape OAuth client credentials are not configured")

        try:
            response = await self._client.post(
                self.settings.token_url,
                data=token_data,
                auth=(self.settings.client_id, self.settings.client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise TokenExchangeError(
                f"Token request failed: {response.status_code} - {response.text}",
                response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TokenExchangeError("Token endpoint returned invalid JSON") from e

    def _expire_states(self) -> None:
        now = datetime.now()
        for token in [t for t, data in self._oauth_states.items() if now > data["expires_at"]]:
            del self._oauth_states[token]
