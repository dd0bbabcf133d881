"""
Strava OAuth flow.

Handles:
- Authorization URL generation
- Code exchange for tokens (single-use, never retried)
- Token refresh
- Token revocation (deauthorization, best effort)
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from runsync.config import settings
from .client import API_URL, new_http_client, send
from .exceptions import (
    ProviderError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from .schemas import TokenGrant

logger = logging.getLogger(__name__)


class StravaOAuth:
    """
    Strava OAuth handler.

    Usage:
        oauth = StravaOAuth()
        auth_url = oauth.get_authorization_url(state=user_id)
        grant = await oauth.exchange_code(code)
        grant = await oauth.refresh_token(refresh_token)
    """

    AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
    TOKEN_URL = "https://www.strava.com/oauth/token"
    DEAUTHORIZE_URL = "https://www.strava.com/oauth/deauthorize"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        scope: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.client_id = client_id or settings.strava_client_id
        self.client_secret = client_secret or settings.strava_client_secret
        self.redirect_uri = redirect_uri or settings.strava_redirect_uri
        self.scope = scope or settings.strava_scope
        self.timeout = timeout or settings.strava_http_timeout_seconds
        self.transport = transport

    def get_authorization_url(self, state: str) -> str:
        """
        Generate Strava OAuth authorization URL.

        Args:
            state: Opaque value echoed back on the callback. We pass the
                   local user id so the callback can find the user without
                   a server-side session.

        Returns:
            Authorization URL string
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope,
            "approval_prompt": "auto",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def _post_token(self, data: dict, action: str) -> dict:
        """
        POST to the token endpoint.

        4xx (other than 429) means the grant itself was rejected.
        """
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **data,
        }
        async with new_http_client(self.timeout, self.transport) as client:
            response = await send(client, "POST", self.TOKEN_URL, data=payload)

        status = response.status_code
        if status == 200:
            return response.json()

        logger.error(f"Strava {action} failed: {status}")
        if status == 429:
            raise ProviderRateLimitError(f"{action} rate limited", status_code=status)
        if status >= 500:
            raise ProviderUnavailableError(f"{action} failed: {status}", status_code=status)
        raise ProviderAuthError(f"{action} failed: {status}", status_code=status)

    async def exchange_code(self, code: str) -> TokenGrant:
        """
        Exchange authorization code for tokens.

        Authorization codes are single-use, so this is never retried.

        Raises:
            ProviderAuthError: If the provider rejects the code
            ProviderUnavailableError: On timeout or provider outage
        """
        data = await self._post_token(
            {"code": code, "grant_type": "authorization_code"},
            action="Token exchange",
        )

        athlete_id = (data.get("athlete") or {}).get("id")
        if athlete_id is None:
            athlete_id = await self._fetch_athlete_id(data["access_token"])

        logger.info(f"Strava tokens obtained for athlete {athlete_id}")
        return TokenGrant(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=data["expires_at"],
            external_account_id=str(athlete_id),
        )

    async def _fetch_athlete_id(self, access_token: str) -> int:
        """Look up the athlete id when the token response omits it."""
        async with new_http_client(self.timeout, self.transport) as client:
            response = await send(
                client,
                "GET",
                f"{API_URL}/athlete",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        if response.status_code != 200:
            raise ProviderAuthError(
                f"Athlete lookup failed: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()["id"]

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """
        Refresh an expired access token.

        Raises:
            ProviderAuthError: If the refresh token was revoked (terminal)
            ProviderRateLimitError: If rate limited
            ProviderUnavailableError: On timeout or provider outage
        """
        data = await self._post_token(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"},
            action="Token refresh",
        )
        return TokenGrant(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=data["expires_at"],
        )

    async def revoke(self, access_token: str) -> bool:
        """
        Revoke Strava access (user disconnect).

        Best effort: failures are logged and reported as False,
        never raised, so local disconnection always proceeds.
        """
        try:
            async with new_http_client(self.timeout, self.transport) as client:
                response = await send(
                    client,
                    "POST",
                    self.DEAUTHORIZE_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except ProviderError as e:
            logger.warning(f"Strava deauthorize failed: {e}")
            return False

        if response.status_code != 200:
            logger.warning(f"Strava deauthorize returned {response.status_code}")
            return False

        logger.info("Strava access revoked")
        return True
