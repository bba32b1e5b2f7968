"""
Refresh-token grant against an OAuth provider's token endpoint.
"""
import base64
from datetime import datetime
from typing import Optional, Protocol

import httpx

from linkstore.config import Settings
from linkstore.exceptions import ConfigurationError, ProviderUnavailableError, RefreshTokenError
from linkstore.logging_config import get_logger
from linkstore.schemas import TokenGrant
from linkstore.utils import Clock, utcnow

logger = get_logger(__name__)


class TokenRefresher(Protocol):
    """Anything that can exchange a refresh token for a new grant."""

    async def refresh(self, refresh_token: str, now: Optional[datetime] = None) -> TokenGrant:
        ...


class OAuthTokenRefresher:
    """Exchanges refresh tokens using the standard ``grant_type=refresh_token`` request."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        timeout: float = 10.0,
        clock: Clock = utcnow,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.clock = clock
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> "OAuthTokenRefresher":
        """Build a refresher from the OAuth settings block."""
        if not settings.is_oauth_configured:
            raise ConfigurationError(
                "OAUTH_TOKEN_URL, OAUTH_CLIENT_ID and OAUTH_CLIENT_SECRET must be set"
            )
        return cls(
            settings.oauth_token_url,
            settings.oauth_client_id,
            settings.oauth_client_secret,
            timeout=settings.oauth_timeout_seconds,
            clock=clock,
        )

    def _auth_header(self) -> str:
        credentials = f"{self.client_id}:{self.client_secret}"
        return "Basic " + base64.b64encode(credentials.encode()).decode()

    async def refresh(self, refresh_token: str, now: Optional[datetime] = None) -> TokenGrant:
        """
        Request a new access token.

        Args:
            refresh_token: Refresh token currently stored for the account
            now: Reference time for the grant expiry (default: own clock)

        Returns:
            New token grant; ``refresh_token`` is None if the provider did not rotate it

        Raises:
            RefreshTokenError: The provider rejected the refresh token
            ProviderUnavailableError: Network failure or provider-side error
        """
        headers = {
            "Authorization": self._auth_header(),
            "Content-Type": "application/x-www-form-urlencoded",
        }
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.token_url, data=data, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("token_refresh_unavailable", error=str(e))
            raise ProviderUnavailableError(f"Token endpoint unreachable: {e}") from e

        if response.status_code >= 500:
            logger.warning("token_refresh_unavailable", status_code=response.status_code)
            raise ProviderUnavailableError(
                f"Token endpoint returned {response.status_code}"
            )
        if response.status_code >= 400:
            logger.info("token_refresh_rejected", status_code=response.status_code)
            raise RefreshTokenError(
                f"Refresh token rejected: {response.text[:200]}",
                status_code=response.status_code,
            )

        payload = response.json()
        if "access_token" not in payload:
            raise RefreshTokenError("Token response did not contain an access token",
                                    status_code=response.status_code)
        return TokenGrant.from_token_response(payload, now if now is not None else self.clock())
