"""
Tests for the Strava OAuth handler.
"""

from urllib.parse import urlparse, parse_qs

import httpx
import pytest

from runsync.features.strava.oauth import StravaOAuth
from runsync.features.strava.exceptions import (
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from tests.helpers import FakeStrava


def _oauth(transport) -> StravaOAuth:
    return StravaOAuth(
        client_id="12345",
        client_secret="secret",
        redirect_uri="http://testserver/callback",
        scope="activity:read_all",
        timeout=5.0,
        transport=transport,
    )


class TestAuthorizationUrl:

    def test_contains_required_params(self):
        url = _oauth(None).get_authorization_url(state="user-42")
        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert parsed.netloc == "www.strava.com"
        assert params["client_id"] == ["12345"]
        assert params["redirect_uri"] == ["http://testserver/callback"]
        assert params["response_type"] == ["code"]
        assert params["scope"] == ["activity:read_all"]
        assert params["state"] == ["user-42"]


class TestTokenEndpoint:

    @pytest.mark.asyncio
    async def test_exchange_code(self):
        fake = FakeStrava()
        grant = await _oauth(fake.transport()).exchange_code("abc")

        assert grant.access_token == "access-1"
        assert grant.refresh_token == "refresh-1"
        assert grant.external_account_id == str(fake.athlete_id)

        form = dict(httpx.QueryParams(fake.requests[0].content.decode()))
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "abc"
        assert form["client_secret"] == "secret"

    @pytest.mark.asyncio
    async def test_exchange_code_looks_up_athlete_when_missing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/oauth/token":
                return httpx.Response(200, json={
                    "access_token": "a", "refresh_token": "r", "expires_at": 1,
                })
            return httpx.Response(200, json={"id": 555})

        grant = await _oauth(httpx.MockTransport(handler)).exchange_code("abc")
        assert grant.external_account_id == "555"

    @pytest.mark.asyncio
    async def test_refresh_token(self):
        fake = FakeStrava()
        grant = await _oauth(fake.transport()).refresh_token("refresh-0")

        form = dict(httpx.QueryParams(fake.requests[0].content.decode()))
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "refresh-0"
        assert grant.access_token == "access-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (400, ProviderAuthError),
        (401, ProviderAuthError),
        (429, ProviderRateLimitError),
        (502, ProviderUnavailableError),
    ])
    async def test_refresh_error_mapping(self, status, error):
        fake = FakeStrava()
        fake.token_status = status

        with pytest.raises(error):
            await _oauth(fake.transport()).refresh_token("refresh-0")

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderUnavailableError):
            await _oauth(httpx.MockTransport(handler)).refresh_token("r")


class TestRevoke:

    @pytest.mark.asyncio
    async def test_revoke_success(self):
        fake = FakeStrava()
        assert await _oauth(fake.transport()).revoke("access-0") is True
        assert fake.revoked == ["Bearer access-0"]

    @pytest.mark.asyncio
    async def test_revoke_failure_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert await _oauth(httpx.MockTransport(handler)).revoke("access-0") is False

    @pytest.mark.asyncio
    async def test_revoke_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401))
        assert await _oauth(transport).revoke("access-0") is False
