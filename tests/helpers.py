"""
Test helpers: fake Strava endpoints and factories.
"""

import time
from datetime import datetime, timedelta
from typing import Optional

import httpx

from runsync.features.strava import (
    IntegrationCredential,
    StravaIntegration,
)
from runsync.config import settings


def activity_json(
    activity_id: int,
    sport_type: str = "Run",
    distance: float = 5000.0,
    moving_time: int = 1500,
    name: str = "Morning Run",
    start: Optional[datetime] = None,
) -> dict:
    """Activity as returned by the Strava REST API."""
    start = start or datetime(2024, 5, 1, 6, 30)
    return {
        "id": activity_id,
        "name": name,
        "type": sport_type,
        "sport_type": sport_type,
        "start_date": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "start_date_local": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "distance": distance,
        "moving_time": moving_time,
        "elapsed_time": moving_time + 60,
    }


class FakeStrava:
    """
    In-memory Strava served through httpx.MockTransport.

    Records every request so tests can assert on call counts.
    """

    def __init__(self):
        self.activities: dict[int, dict] = {}
        self.requests: list[httpx.Request] = []
        self.refresh_count = 0
        self.token_status = 200
        self.api_status = 200
        self.athlete_id = 987654
        self.revoked: list[str] = []
        # When set, only the most recently issued refresh token is accepted
        self.rotating_refresh = False
        self.current_refresh_token = "refresh-0"

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/oauth/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"message": "Bad Request"})
            form = dict(httpx.QueryParams(request.content.decode()))
            if (
                self.rotating_refresh
                and form.get("grant_type") == "refresh_token"
                and form.get("refresh_token") != self.current_refresh_token
            ):
                return httpx.Response(400, json={"message": "Bad Request"})
            self.refresh_count += 1
            self.current_refresh_token = f"refresh-{self.refresh_count}"
            return httpx.Response(200, json={
                "token_type": "Bearer",
                "access_token": f"access-{self.refresh_count}",
                "refresh_token": f"refresh-{self.refresh_count}",
                "expires_at": int(time.time()) + 6 * 3600,
                "athlete": {"id": self.athlete_id},
            })

        if path == "/oauth/deauthorize":
            self.revoked.append(request.headers.get("Authorization", ""))
            return httpx.Response(200, json={})

        if self.api_status != 200:
            return httpx.Response(self.api_status, json={"message": "error"})

        if path == "/api/v3/athlete/activities":
            page = int(request.url.params.get("page", 1))
            per_page = int(request.url.params.get("per_page", 100))
            items = list(self.activities.values())
            return httpx.Response(200, json=items[(page - 1) * per_page:page * per_page])

        if path.startswith("/api/v3/activities/"):
            activity_id = int(path.rsplit("/", 1)[1])
            if activity_id not in self.activities:
                return httpx.Response(404, json={"message": "Record Not Found"})
            return httpx.Response(200, json=self.activities[activity_id])

        if path == "/api/v3/athlete":
            return httpx.Response(200, json={"id": self.athlete_id})

        return httpx.Response(404)


def make_integration(fake: FakeStrava) -> StravaIntegration:
    return StravaIntegration.from_settings(settings, transport=fake.transport())


async def add_credential(
    db,
    cipher,
    user_id: str = "user-1",
    external_account_id: str = "987654",
    access_token: str = "access-0",
    refresh_token: str = "refresh-0",
    expires_in: int = 3600,
    connected: bool = True,
    last_synced_at: Optional[datetime] = None,
) -> IntegrationCredential:
    credential = IntegrationCredential(
        user_id=user_id,
        provider="strava",
        connected=connected,
        external_account_id=external_account_id,
        access_token_encrypted=cipher.encrypt(access_token) if connected else None,
        refresh_token_encrypted=cipher.encrypt(refresh_token) if connected else None,
        expires_at=int(time.time()) + expires_in if connected else None,
        scope="activity:read_all",
        last_synced_at=last_synced_at,
    )
    db.add(credential)
    await db.commit()
    return credential


def recent(hours: int = 1) -> datetime:
    return datetime.utcnow() - timedelta(hours=hours)
