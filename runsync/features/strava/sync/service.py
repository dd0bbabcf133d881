"""
Strava sync orchestration.

Shared by the webhook worker, the reconciliation scheduler and the manual
sync endpoint:

    token lifecycle -> provider client -> importer -> credential update

Sync Flow:
1. Resolve a usable access token; a refreshed pair is stored with a
   conditional update so concurrent refreshes cannot both win.
2. List (or fetch) activities, keep runs only.
3. Import each run idempotently.
4. Record last_synced_at when the whole pass succeeded.

A ProviderAuthError anywhere in the flow is terminal: the credential is
disconnected and the user has to reconnect.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..client import StravaClient
from ..exceptions import NotConnectedError, ProviderAuthError
from ..importer import ActivityImporter, ImportResult, ImportStatus, is_run
from ..models import IntegrationCredential
from ..repository import CredentialRepository, AuditEventRepository
from ..tokens import TokenLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one import pass for one account."""

    considered: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0

    def add(self, result: ImportResult) -> None:
        if result.status is ImportStatus.IMPORTED:
            self.imported += 1
        elif result.status is ImportStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


class StravaSyncService:
    """
    Main sync orchestrator.

    Usage:
        service = StravaSyncService(db, tokens, client)
        result = await service.sync_user(user_id, lookback=timedelta(days=7))
    """

    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenLifecycleManager,
        client: StravaClient
    ):
        self.db = db
        self.tokens = tokens
        self.client = client
        self.credentials = CredentialRepository(db)
        self.audit = AuditEventRepository(db)
        self.importer = ActivityImporter(db)

    # -------------------------------------------------------------------------
    # Token Management
    # -------------------------------------------------------------------------

    async def resolve_access_token(self, credential: IntegrationCredential) -> str:
        """
        Get a usable access token, persisting a refresh if one happened.

        Raises:
            NotConnectedError: Credential disconnected (possibly by a concurrent caller)
            DecryptionError: Stored tokens are corrupted
            ProviderAuthError: Refresh token revoked; credential is now disconnected
            ProviderRateLimitError, ProviderUnavailableError: Transient failure
        """
        credential_id, user_id = credential.id, credential.user_id
        read_expires_at = credential.expires_at

        try:
            result = await self.tokens.ensure_valid_access_token(credential)
        except ProviderAuthError:
            disconnected = await self.handle_revoked_grant(
                credential_id,
                user_id,
                reason="refresh_rejected",
                expected_expires_at=read_expires_at,
            )
            if disconnected:
                raise
            # The rejected refresh token was already rotated by another caller.
            logger.info(f"Rejected refresh for user {user_id} superseded by a concurrent refresh")
            return await self._current_access_token(credential_id, user_id)

        if not result.rotation:
            return result.access_token

        rotation = result.rotation
        stored = await self.credentials.apply_rotation(
            credential_id,
            expected_expires_at=rotation.previous_expires_at,
            access_token_encrypted=rotation.access_token_encrypted,
            refresh_token_encrypted=rotation.refresh_token_encrypted,
            expires_at=rotation.expires_at,
        )
        await self.db.commit()

        if stored:
            logger.info(f"Stored refreshed Strava token for user {user_id}")
            return result.access_token

        # Another caller rotated first; its pair is the one on record.
        logger.info(f"Token refresh for user {user_id} superseded by a concurrent refresh")
        return await self._current_access_token(credential_id, user_id)

    async def _current_access_token(self, credential_id: int, user_id: str) -> str:
        current = await self.credentials.reload(credential_id)
        if not current or not current.connected or not current.has_tokens:
            raise NotConnectedError(f"User {user_id} was disconnected during refresh")
        return self.tokens.cipher.decrypt(current.access_token_encrypted)

    async def handle_revoked_grant(
        self,
        credential_id: int,
        user_id: str,
        reason: str,
        expected_expires_at: Optional[int] = None
    ) -> bool:
        """
        Flip the credential to disconnected after a terminal auth failure.

        With expected_expires_at the disconnect only applies to the token
        pair that was rejected.

        Returns:
            False if the row no longer held that pair (or was already disconnected)
        """
        changed = await self.credentials.disconnect_by_id(
            credential_id, expected_expires_at=expected_expires_at
        )
        if changed:
            await self.audit.record(user_id, "auto_disconnect", {"reason": reason})
        await self.db.commit()

        if changed:
            logger.warning(
                f"Strava grant rejected for user {user_id} ({reason}); credential disconnected"
            )
        return changed

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def sync_recent_activities(
        self,
        credential: IntegrationCredential,
        since: datetime
    ) -> SyncResult:
        """
        Import runs started after `since` for one connected account.

        last_synced_at only moves forward when no import failed, so a
        failed import is retried on the next pass.
        """
        credential_id, user_id = credential.id, credential.user_id
        access_token = await self.resolve_access_token(credential)

        try:
            activities = await self.client.list_activities(access_token, since)
        except ProviderAuthError:
            await self.handle_revoked_grant(credential_id, user_id, reason="api_unauthorized")
            raise

        runs = [activity for activity in activities if is_run(activity)]
        result = SyncResult(considered=len(runs))

        for activity in runs:
            result.add(await self.importer.import_activity(user_id, activity))

        if result.failed == 0:
            await self.credentials.touch_last_synced(credential_id, datetime.utcnow())
            await self.db.commit()

        logger.info(
            f"Strava sync for user {user_id}: {result.imported} imported, "
            f"{result.skipped} skipped, {result.failed} failed "
            f"of {result.considered} runs"
        )
        return result

    async def sync_user(self, user_id: str, lookback: timedelta) -> SyncResult:
        """
        Manual sync over a caller-chosen lookback window.

        Raises:
            NotConnectedError: User has no connected credential
        """
        credential = await self.credentials.get_for_user(user_id)
        if not credential or not credential.connected:
            raise NotConnectedError(f"User {user_id} is not connected")

        since = datetime.utcnow() - lookback
        return await self.sync_recent_activities(credential, since)

    async def reconcile_credential(
        self,
        credential_id: int,
        lookback: timedelta
    ) -> Optional[SyncResult]:
        """
        Scheduler pass for one account.

        Starts from last_synced_at or now - lookback, whichever is later.
        Returns None when the account was disconnected since enumeration.
        """
        credential = await self.credentials.reload(credential_id)
        if not credential or not credential.connected:
            logger.debug(f"Credential {credential_id} no longer connected, skipping")
            return None

        since = datetime.utcnow() - lookback
        if credential.last_synced_at and credential.last_synced_at > since:
            since = credential.last_synced_at

        return await self.sync_recent_activities(credential, since)

    async def import_activity_by_id(
        self,
        credential: IntegrationCredential,
        external_id: str
    ) -> ImportResult:
        """
        Import one activity named by a webhook event.

        The dedup check runs before the provider is called, so a redelivered
        event costs no API request.
        """
        credential_id, user_id = credential.id, credential.user_id

        if await self.importer.activities.is_imported(user_id, external_id):
            return ImportResult(ImportStatus.SKIPPED, external_id, reason="already_imported")

        access_token = await self.resolve_access_token(credential)

        try:
            activity = await self.client.fetch_activity(access_token, external_id)
        except ProviderAuthError:
            await self.handle_revoked_grant(credential_id, user_id, reason="api_unauthorized")
            raise

        if not is_run(activity):
            logger.debug(f"Activity {external_id} is {activity.sport_type or activity.type}, not a run")
            return ImportResult(ImportStatus.SKIPPED, external_id, reason="not_a_run")

        return await self.importer.import_activity(user_id, activity)
