"""
Tests for the Strava integration endpoints.
"""

import asyncio
from urllib.parse import urlparse, parse_qs

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from runsync.db.session import get_async_db
from runsync.features.strava import (
    IntegrationAuditEvent,
    IntegrationCredential,
    WebhookDispatcher,
)
from runsync.main import app
from tests.helpers import FakeStrava, activity_json, add_credential, make_integration

USER = {"X-User-Id": "user-1"}
BASE = "/api/v1/integrations/strava"


@pytest.fixture
def fake():
    fake = FakeStrava()
    fake.activities = {1: activity_json(1, "Run"), 2: activity_json(2, "Ride")}
    return fake


@pytest.fixture
def dispatcher(session_factory, fake):
    return WebhookDispatcher(session_factory, make_integration(fake).sync_service)


@pytest_asyncio.fixture
async def client(session_factory, fake, dispatcher):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_get_db
    app.state.strava = make_integration(fake)
    app.state.webhook_dispatcher = dispatcher

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
    del app.state.strava
    del app.state.webhook_dispatcher


async def _credential(session_factory, user_id="user-1") -> IntegrationCredential:
    async with session_factory() as db:
        result = await db.execute(
            select(IntegrationCredential).where(IntegrationCredential.user_id == user_id)
        )
        return result.scalar_one_or_none()


def _redirect_params(response) -> dict:
    location = urlparse(response.headers["location"])
    assert location.netloc == "frontend.test"
    assert location.path == "/integrations"
    return {k: v[0] for k, v in parse_qs(location.query).items()}


class TestAuth:

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        response = await client.get(f"{BASE}/status")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuthorize:

    @pytest.mark.asyncio
    async def test_auth_url_carries_user_as_state(self, client):
        response = await client.get(f"{BASE}/authorize", headers=USER)

        assert response.status_code == 200
        params = parse_qs(urlparse(response.json()["auth_url"]).query)
        assert params["state"] == ["user-1"]
        assert params["response_type"] == ["code"]
        assert params["client_id"] == ["12345"]


class TestCallback:

    @pytest.mark.asyncio
    async def test_success_stores_encrypted_tokens(self, client, fake, session_factory, cipher):
        response = await client.get(
            f"{BASE}/callback",
            params={"code": "abc", "state": "user-1", "scope": "read,activity:read_all"},
        )

        assert response.status_code == 307
        assert _redirect_params(response) == {"success": "strava_connected"}
        assert "access-1" not in response.headers["location"]

        credential = await _credential(session_factory)
        assert credential.connected is True
        assert credential.external_account_id == str(fake.athlete_id)
        assert credential.access_token_encrypted != "access-1"
        assert cipher.decrypt(credential.access_token_encrypted) == "access-1"
        assert cipher.decrypt(credential.refresh_token_encrypted) == "refresh-1"

        async with session_factory() as db:
            actions = (await db.execute(select(IntegrationAuditEvent.action))).scalars().all()
        assert actions == ["connect"]

    @pytest.mark.asyncio
    async def test_reconnect_updates_existing_row(self, client, db, cipher, session_factory):
        await add_credential(db, cipher, connected=False)

        await client.get(f"{BASE}/callback", params={"code": "abc", "state": "user-1"})

        async with session_factory() as check:
            rows = (await check.execute(select(IntegrationCredential))).scalars().all()
        assert len(rows) == 1
        assert rows[0].connected is True

    @pytest.mark.asyncio
    async def test_account_linked_elsewhere_is_moved(self, client, db, cipher, fake, session_factory):
        await add_credential(db, cipher, user_id="user-old", external_account_id=str(fake.athlete_id))

        await client.get(f"{BASE}/callback", params={"code": "abc", "state": "user-1"})

        old = await _credential(session_factory, "user-old")
        new = await _credential(session_factory, "user-1")
        assert old.connected is False
        assert old.access_token_encrypted is None
        assert new.connected is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params,code", [
        ({"error": "access_denied", "state": "user-1"}, "access_denied"),
        ({"error": "<script>", "state": "user-1"}, "provider_error"),
        ({"state": "user-1"}, "missing_code"),
        ({"code": "abc"}, "invalid_state"),
    ])
    async def test_error_redirects(self, client, fake, params, code):
        response = await client.get(f"{BASE}/callback", params=params)

        assert response.status_code == 307
        assert _redirect_params(response) == {"error": code}
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_exchange_failure(self, client, fake, session_factory):
        fake.token_status = 400

        response = await client.get(f"{BASE}/callback", params={"code": "bad", "state": "user-1"})

        assert _redirect_params(response) == {"error": "token_exchange_failed"}
        assert await _credential(session_factory) is None


class TestStatus:

    @pytest.mark.asyncio
    async def test_not_connected(self, client):
        response = await client.get(f"{BASE}/status", headers=USER)
        assert response.json() == {
            "connected": False,
            "last_synced_at": None,
            "external_account_id": None,
        }

    @pytest.mark.asyncio
    async def test_connected_never_exposes_tokens(self, client, db, cipher):
        await add_credential(db, cipher)

        response = await client.get(f"{BASE}/status", headers=USER)

        body = response.json()
        assert body["connected"] is True
        assert body["external_account_id"] == "987654"
        assert "access" not in response.text
        assert "token" not in response.text


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_revokes_and_clears(self, client, db, cipher, fake, session_factory):
        await add_credential(db, cipher)

        response = await client.post(f"{BASE}/disconnect", headers=USER)

        assert response.status_code == 200
        assert response.json() == {"connected": False}
        assert fake.revoked == ["Bearer access-0"]

        credential = await _credential(session_factory)
        assert credential.connected is False
        assert credential.access_token_encrypted is None
        assert credential.refresh_token_encrypted is None

    @pytest.mark.asyncio
    async def test_clears_even_when_revoke_fails(self, client, db, cipher, fake, session_factory):
        await add_credential(db, cipher)
        app.state.strava = make_integration(_UnreachableStrava())

        response = await client.post(f"{BASE}/disconnect", headers=USER)

        assert response.status_code == 200
        assert (await _credential(session_factory)).connected is False

    @pytest.mark.asyncio
    async def test_no_credential(self, client):
        response = await client.post(f"{BASE}/disconnect", headers=USER)

        assert response.status_code == 200
        assert response.json() == {"connected": False}


class TestManualSync:

    @pytest.mark.asyncio
    async def test_sync(self, client, db, cipher):
        await add_credential(db, cipher)

        response = await client.post(f"{BASE}/sync", params={"days": 30}, headers=USER)

        assert response.status_code == 200
        assert response.json() == {"imported_count": 1, "considered_count": 1}

    @pytest.mark.asyncio
    async def test_not_connected(self, client):
        response = await client.post(f"{BASE}/sync", headers=USER)
        assert response.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, 91])
    async def test_days_out_of_range(self, client, days):
        response = await client.post(f"{BASE}/sync", params={"days": days}, headers=USER)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_provider_outage(self, client, db, cipher, fake):
        await add_credential(db, cipher)
        fake.api_status = 503

        response = await client.post(f"{BASE}/sync", headers=USER)

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to sync activities"


class TestWebhook:

    @pytest.mark.asyncio
    async def test_verification(self, client):
        response = await client.get(f"{BASE}/webhook", params={
            "hub.mode": "subscribe",
            "hub.challenge": "c-123",
            "hub.verify_token": "test-verify-token",
        })

        assert response.status_code == 200
        assert response.json() == {"hub.challenge": "c-123"}

    @pytest.mark.asyncio
    async def test_verification_rejected(self, client):
        response = await client.get(f"{BASE}/webhook", params={
            "hub.mode": "subscribe",
            "hub.challenge": "c-123",
            "hub.verify_token": "wrong",
        })

        assert response.status_code == 403
        assert response.json() == {"error": "Verification failed"}

    @pytest.mark.asyncio
    async def test_event_queued_and_acknowledged(self, client, dispatcher, fake):
        response = await client.post(f"{BASE}/webhook", json={
            "object_type": "activity",
            "aspect_type": "create",
            "object_id": 1,
            "owner_id": 987654,
            "subscription_id": 1,
            "event_time": 1700000000,
            "updates": {},
        })

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert dispatcher.pending == 1
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_ack_does_not_wait_for_import(self, client, dispatcher):
        started = asyncio.Event()

        async def hang(event):
            started.set()
            await asyncio.sleep(3600)

        dispatcher.process = hang
        await dispatcher.start()
        try:
            response = await asyncio.wait_for(
                client.post(f"{BASE}/webhook", json={
                    "object_type": "activity",
                    "aspect_type": "create",
                    "object_id": 1,
                    "owner_id": 987654,
                }),
                timeout=2.0,
            )
            await asyncio.wait_for(started.wait(), timeout=2.0)
        finally:
            await dispatcher.stop(drain_timeout=0.1)

        assert response.json() == {"received": True}

    @pytest.mark.asyncio
    async def test_update_event_ignored(self, client, dispatcher):
        response = await client.post(f"{BASE}/webhook", json={
            "object_type": "activity",
            "aspect_type": "update",
            "object_id": 1,
            "owner_id": 987654,
            "updates": {"title": "New name"},
        })

        assert response.json() == {"received": True}
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_malformed_body_still_acknowledged(self, client, dispatcher):
        response = await client.post(
            f"{BASE}/webhook",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert dispatcher.pending == 0


class _UnreachableStrava(FakeStrava):

    def handle(self, request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)
