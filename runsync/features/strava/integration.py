"""
Strava integration wiring.

Built once at startup from Settings and handed to the routes, the
webhook dispatcher and the reconciliation scheduler.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from runsync.config import Settings
from .client import StravaClient
from .crypto import TokenCipher
from .oauth import StravaOAuth
from .sync.config import SyncConfig
from .sync.service import StravaSyncService
from .tokens import TokenLifecycleManager


@dataclass
class StravaIntegration:
    cipher: TokenCipher
    oauth: StravaOAuth
    client: StravaClient
    tokens: TokenLifecycleManager

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "StravaIntegration":
        cipher = TokenCipher(settings.token_encryption_key)
        oauth = StravaOAuth(
            client_id=settings.strava_client_id,
            client_secret=settings.strava_client_secret,
            redirect_uri=settings.strava_redirect_uri,
            scope=settings.strava_scope,
            timeout=settings.strava_http_timeout_seconds,
            transport=transport,
        )
        client = StravaClient(
            timeout=settings.strava_http_timeout_seconds,
            transport=transport,
            per_page=SyncConfig.ACTIVITIES_PER_PAGE,
            max_pages=SyncConfig.MAX_PAGES_PER_SYNC,
        )
        tokens = TokenLifecycleManager(
            cipher,
            oauth,
            safety_margin_seconds=settings.token_safety_margin_seconds,
        )
        return cls(cipher=cipher, oauth=oauth, client=client, tokens=tokens)

    def sync_service(self, db: AsyncSession) -> StravaSyncService:
        return StravaSyncService(db, self.tokens, self.client)
