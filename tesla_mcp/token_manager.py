"""Token Manager for the Tesla MCP Server.

This module handles:
- Exchanging the configured refresh token for short-lived access tokens
- Checking token validity before API calls
- Refreshing on demand, with at most one refresh in flight at a time
- Tracking refresh statistics for diagnostics
"""
import asyncio
import math
import httpx
from datetime import datetime, timedelta
from typing import Callable, Optional
import logging

from .config import (
    TESLA_AUTH_URL,
    TESLA_SCOPES,
    HTTP_TIMEOUT_SECONDS,
    LOG_TOKEN_EVENTS,
)
from .models import AccessToken, Credentials, utc_now

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when an access token cannot be obtained."""
    pass


class ConfigError(AuthError):
    """Raised when a required credential is missing from the configuration."""
    pass


class TokenManager:
    """Manages the access token lifecycle for the configured Tesla account.

    The manager exclusively owns the current access token. A token is never
    handed out at or past its expiry instant; instead a synchronous refresh
    is performed first. Concurrent callers that need a refresh share the
    single in-flight refresh request.
    """

    def __init__(
        self,
        credentials: Credentials,
        auth_url: str = TESLA_AUTH_URL,
        clock: Callable[[], datetime] = utc_now,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._client_id = credentials.client_id
        self._client_secret = credentials.client_secret
        self._refresh_token = credentials.refresh_token
        self._auth_url = auth_url
        self._clock = clock
        self._http_client = http_client
        self._token: Optional[AccessToken] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self.refresh_count = 0
        self.last_refreshed_at: Optional[datetime] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @property
    def token(self) -> Optional[AccessToken]:
        """The currently held token, if any (may be expired)."""
        return self._token

    # ==========================================================================
    # Token Validation and Refresh
    # ==========================================================================

    async def get_valid_token(self) -> str:
        """Get an access token that is unexpired at the instant of return.

        Returns:
            The access token string

        Raises:
            ConfigError: If a credential is missing
            AuthError: If the token could not be refreshed
        """
        token = self._token
        if token is not None and not token.is_expired(self._clock()):
            if LOG_TOKEN_EVENTS:
                remaining = (token.expires_at - self._clock()).total_seconds()
                logger.debug(f"[TokenManager] Access token valid ({remaining:.1f}s remaining)")
            return token.access_token

        if LOG_TOKEN_EVENTS:
            logger.info(
                "[TokenManager] No access token held, refreshing"
                if token is None
                else "[TokenManager] Access token expired, refreshing"
            )
        token = await self.refresh()
        return token.access_token

    async def refresh(self) -> AccessToken:
        """Refresh the access token, joining a refresh already in flight.

        Returns:
            The newly issued token

        Raises:
            ConfigError: If a credential is missing
            AuthError: If the exchange fails; the previous token is kept
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._exchange_refresh_token())
        elif LOG_TOKEN_EVENTS:
            logger.debug("[TokenManager] Joining in-flight token refresh")
        # shield: a cancelled caller must not cancel the refresh others are awaiting
        return await asyncio.shield(self._refresh_task)

    async def _exchange_refresh_token(self) -> AccessToken:
        """Exchange the refresh token for a new access token.

        The new token is only stored once the whole response has been
        validated, so every failure leaves the held token untouched.
        """
        missing = [
            name for name, value in (
                ("TESLA_CLIENT_ID", self._client_id),
                ("TESLA_CLIENT_SECRET", self._client_secret),
                ("TESLA_REFRESH_TOKEN", self._refresh_token),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"{', '.join(missing)} not set in environment variables")

        client = await self._get_http_client()

        try:
            response = await client.post(
                self._auth_url,
                data={
                    "grant_type": "refresh_token",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "scope": TESLA_SCOPES,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            if LOG_TOKEN_EVENTS:
                logger.error(f"[TokenManager] Network error during refresh: {e}")
            raise AuthError(f"Token refresh failed due to network error: {e}") from e

        if not response.is_success:
            if LOG_TOKEN_EVENTS:
                logger.error(
                    f"[TokenManager] Refresh failed: {response.status_code} - {response.text}"
                )
            raise AuthError(
                f"Token refresh failed: {response.status_code}. "
                f"Check the client credentials and refresh token."
            )

        try:
            token_data = response.json()
            access_token = token_data["access_token"]
            expires_in = float(token_data["expires_in"])
        except (ValueError, TypeError, KeyError) as e:
            raise AuthError(f"Malformed token response from authorization endpoint: {e!r}") from e
        if not isinstance(access_token, str) or not access_token:
            raise AuthError("Malformed token response: empty access_token")
        if not math.isfinite(expires_in) or expires_in <= 0:
            raise AuthError(f"Malformed token response: invalid expires_in={expires_in}")

        now = self._clock()
        try:
            expires_at = now + timedelta(seconds=expires_in)
        except (OverflowError, ValueError) as e:
            raise AuthError(f"Malformed token response: expires_in={expires_in} out of range") from e
        token = AccessToken(access_token=access_token, expires_at=expires_at, obtained_at=now)
        if token.is_expired(now):
            raise AuthError(f"Authorization endpoint issued an already expired token (expires_in={expires_in})")

        self._token = token
        rotated = token_data.get("refresh_token")
        if isinstance(rotated, str) and rotated:
            self._refresh_token = rotated
        self.refresh_count += 1
        self.last_refreshed_at = now

        if LOG_TOKEN_EVENTS:
            logger.info(
                f"[TokenManager] Token refreshed ({access_token[:5]}..., refresh #{self.refresh_count}). "
                f"New access token expires in {expires_in:.0f}s"
            )
        return token

    # ==========================================================================
    # Debug Utilities
    # ==========================================================================

    def get_token_stats(self) -> dict:
        """Get token status for diagnostics; never includes the token itself."""
        now = self._clock()
        token = self._token
        return {
            "has_token": token is not None,
            "access_token_expires_in_seconds": (
                max(0, (token.expires_at - now).total_seconds()) if token else 0
            ),
            "refresh_count": self.refresh_count,
            "last_refreshed_at": (
                self.last_refreshed_at.isoformat() if self.last_refreshed_at else None
            ),
        }
