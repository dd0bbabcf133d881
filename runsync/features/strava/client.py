"""
Strava API client.

Stateless wrapper over the activity endpoints used by the sync engine.
Every request carries a bounded timeout; timeouts and transport failures
surface as ProviderUnavailableError so callers treat them as transient.

Strava API Limits:
- 200 requests per 15 minutes
- 2,000 requests per day
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from runsync.config import settings
from .exceptions import (
    ProviderError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from .schemas import StravaActivityPayload

logger = logging.getLogger(__name__)


API_URL = "https://www.strava.com/api/v3"


# =============================================================================
# HTTP helpers (shared with oauth.py)
# =============================================================================

def new_http_client(
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Create an AsyncClient with a bounded timeout."""
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs
) -> httpx.Response:
    """
    Send a request, converting transport problems into provider errors.

    Raises:
        ProviderUnavailableError: On timeout or connection failure
    """
    try:
        return await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning(f"Strava request timed out: {method} {url}")
        raise ProviderUnavailableError(f"Request timed out: {e.__class__.__name__}")
    except httpx.TransportError as e:
        logger.warning(f"Strava transport error: {method} {url}: {e.__class__.__name__}")
        raise ProviderUnavailableError(f"Transport error: {e.__class__.__name__}")


def raise_for_api_status(response: httpx.Response) -> None:
    """
    Map a non-2xx REST response to the error taxonomy.

    Raises:
        ProviderAuthError: 401/403
        ProviderRateLimitError: 429
        ProviderUnavailableError: 5xx
        ProviderError: Any other non-2xx
    """
    status = response.status_code
    if 200 <= status < 300:
        return
    if status in (401, 403):
        raise ProviderAuthError("Invalid or expired token", status_code=status)
    if status == 429:
        raise ProviderRateLimitError("Strava rate limit exceeded", status_code=status)
    if status >= 500:
        raise ProviderUnavailableError(f"Strava unavailable: {status}", status_code=status)
    raise ProviderError(f"API error: {status}", status_code=status)


# =============================================================================
# Strava Client
# =============================================================================

class StravaClient:
    """
    Async client for Strava activity endpoints.

    Holds no per-user state: the access token is passed to every call.

    Usage:
        client = StravaClient()
        activities = await client.list_activities(access_token, since)
        activity = await client.fetch_activity(access_token, "1234567890")
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        per_page: int = 100,
        max_pages: int = 10
    ):
        self.timeout = timeout or settings.strava_http_timeout_seconds
        self.transport = transport
        self.per_page = min(per_page, 200)
        self.max_pages = max_pages

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        params: Optional[dict] = None
    ):
        """
        Make an authenticated API request.

        Raises:
            ProviderRateLimitError: If rate limit exceeded
            ProviderAuthError: If authentication fails
            ProviderUnavailableError: On timeout or 5xx
            ProviderError: If API returns another error
        """
        async with new_http_client(self.timeout, self.transport) as client:
            response = await send(
                client,
                method,
                f"{API_URL}{endpoint}",
                headers={"Authorization": f"Bearer {access_token}"},
                params=params
            )

        # Log rate limit headers from Strava
        if "X-RateLimit-Limit" in response.headers:
            logger.debug(
                f"Strava rate limit: {response.headers.get('X-RateLimit-Usage')} "
                f"/ {response.headers.get('X-RateLimit-Limit')}"
            )

        raise_for_api_status(response)
        return response.json()

    async def list_activities(
        self,
        access_token: str,
        since: Optional[datetime] = None
    ) -> list[StravaActivityPayload]:
        """
        Get athlete activities started after `since`, all pages.

        Args:
            access_token: Valid access token
            since: Only activities after this time

        Returns:
            Parsed activities in provider order
        """
        activities: list[StravaActivityPayload] = []
        base_params = {"per_page": self.per_page}
        if since:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)  # naive values are UTC
            base_params["after"] = int(since.timestamp())

        for page in range(1, self.max_pages + 1):
            data = await self._api_request(
                "GET",
                "/athlete/activities",
                access_token,
                {**base_params, "page": page}
            )
            activities.extend(StravaActivityPayload.model_validate(item) for item in data)

            if len(data) < self.per_page:
                break
        else:
            logger.warning(
                f"Stopped listing activities after {self.max_pages} pages"
            )

        return activities

    async def fetch_activity(
        self,
        access_token: str,
        external_id: str | int
    ) -> StravaActivityPayload:
        """
        Get a single activity.

        Used by the webhook path: events say *that* an activity changed,
        not what it contains.
        """
        data = await self._api_request(
            "GET",
            f"/activities/{external_id}",
            access_token,
            {"include_all_efforts": "false"}
        )
        return StravaActivityPayload.model_validate(data)
