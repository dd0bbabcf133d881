"""
Strava repositories.

Data access layer for credentials, imported activities and audit events.
Repositories flush but never commit; the calling service owns the transaction.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from runsync.shared.repository import BaseRepository
from .models import (
    IntegrationCredential,
    ImportedActivity,
    IntegrationAuditEvent,
    PROVIDER_STRAVA,
)


_CLEARED_TOKENS = {
    "connected": False,
    "access_token_encrypted": None,
    "refresh_token_encrypted": None,
    "expires_at": None,
}


class CredentialRepository(BaseRepository[IntegrationCredential]):
    """Repository for provider credentials."""

    def __init__(self, db: AsyncSession, provider: str = PROVIDER_STRAVA):
        super().__init__(db, IntegrationCredential)
        self.provider = provider

    async def get_for_user(self, user_id: str) -> IntegrationCredential | None:
        """
        Get credential for user.

        Args:
            user_id: Local user ID

        Returns:
            IntegrationCredential if found, None otherwise
        """
        return await self.get_by(user_id=user_id, provider=self.provider)

    async def reload(self, credential_id: int) -> IntegrationCredential | None:
        """Re-read a credential, discarding any state cached in the session."""
        result = await self.db.execute(
            select(IntegrationCredential)
            .where(IntegrationCredential.id == credential_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_connected_by_external_account(
        self,
        external_account_id: str
    ) -> IntegrationCredential | None:
        """
        Resolve a provider account to a connected local credential.

        Args:
            external_account_id: Strava athlete ID

        Returns:
            Connected credential, None if no local user is linked
        """
        return await self.get_by(
            external_account_id=external_account_id,
            provider=self.provider,
            connected=True,
        )

    async def list_connected_ids(self) -> list[int]:
        """IDs of all connected credentials, oldest first."""
        result = await self.db.execute(
            select(IntegrationCredential.id)
            .where(IntegrationCredential.provider == self.provider)
            .where(IntegrationCredential.connected.is_(True))
            .order_by(IntegrationCredential.id)
        )
        return list(result.scalars().all())

    async def save_connection(
        self,
        user_id: str,
        external_account_id: str,
        access_token_encrypted: str,
        refresh_token_encrypted: str,
        expires_at: int,
        scope: str | None = None
    ) -> IntegrationCredential:
        """
        Create or update the user's credential in the connected state.

        Args:
            user_id: Local user ID
            external_account_id: Strava athlete ID
            access_token_encrypted: Access token ciphertext
            refresh_token_encrypted: Refresh token ciphertext
            expires_at: Access token expiry (Unix timestamp)
            scope: Granted scope

        Returns:
            Saved credential
        """
        values = {
            "connected": True,
            "external_account_id": external_account_id,
            "access_token_encrypted": access_token_encrypted,
            "refresh_token_encrypted": refresh_token_encrypted,
            "expires_at": expires_at,
            "scope": scope,
            "updated_at": datetime.utcnow(),
        }
        existing = await self.get_for_user(user_id)
        if existing:
            return await self.update(existing, **values)
        return await self.create(user_id=user_id, provider=self.provider, **values)

    async def disconnect_other_links(
        self,
        external_account_id: str,
        keep_user_id: str
    ) -> list[str]:
        """
        Disconnect credentials of other users linked to the same account.

        Returns:
            User IDs that were disconnected
        """
        result = await self.db.execute(
            select(IntegrationCredential)
            .where(IntegrationCredential.provider == self.provider)
            .where(IntegrationCredential.external_account_id == external_account_id)
            .where(IntegrationCredential.user_id != keep_user_id)
            .where(IntegrationCredential.connected.is_(True))
        )
        others = list(result.scalars().all())
        for credential in others:
            await self.disconnect(credential)
        return [c.user_id for c in others]

    async def apply_rotation(
        self,
        credential_id: int,
        expected_expires_at: int,
        access_token_encrypted: str,
        refresh_token_encrypted: str,
        expires_at: int
    ) -> bool:
        """
        Persist a refreshed token pair if nobody rotated it first.

        The update only matches while the row is still connected and still
        holds the expiry that was read before refreshing. When two callers
        race, exactly one update matches; the other gets False and must
        re-read the credential.

        Returns:
            True if this rotation was stored
        """
        updated = await self.update_where(
            {
                "id": credential_id,
                "expires_at": expected_expires_at,
                "connected": True,
            },
            access_token_encrypted=access_token_encrypted,
            refresh_token_encrypted=refresh_token_encrypted,
            expires_at=expires_at,
            updated_at=datetime.utcnow(),
        )
        return updated == 1

    async def disconnect(self, credential: IntegrationCredential) -> IntegrationCredential:
        """Clear both tokens together and mark disconnected."""
        return await self.update(
            credential,
            updated_at=datetime.utcnow(),
            **_CLEARED_TOKENS
        )

    async def disconnect_by_id(
        self,
        credential_id: int,
        expected_expires_at: int | None = None
    ) -> bool:
        """
        Disconnect without loading the row.

        With expected_expires_at the update only matches while the row still
        holds the token pair that was read, so a pair rotated in by another
        caller is left alone.

        Returns:
            True if a row changed
        """
        criteria = {"id": credential_id, "connected": True}
        if expected_expires_at is not None:
            criteria["expires_at"] = expected_expires_at
        updated = await self.update_where(
            criteria,
            updated_at=datetime.utcnow(),
            **_CLEARED_TOKENS
        )
        return updated == 1

    async def touch_last_synced(self, credential_id: int, synced_at: datetime) -> None:
        """Record a successful import pass."""
        await self.update_where({"id": credential_id}, last_synced_at=synced_at)


class ImportedActivityRepository(BaseRepository[ImportedActivity]):
    """Repository for imported activities."""

    def __init__(self, db: AsyncSession, provider: str = PROVIDER_STRAVA):
        super().__init__(db, ImportedActivity)
        self.provider = provider

    async def is_imported(self, owner_id: str, external_id: str) -> bool:
        """
        Check the dedup key before any write.

        Args:
            owner_id: Local user ID
            external_id: Provider activity ID

        Returns:
            True if this activity was already imported for this user
        """
        return await self.exists(
            owner_id=owner_id,
            provider=self.provider,
            external_id=external_id,
        )


class AuditEventRepository(BaseRepository[IntegrationAuditEvent]):
    """Repository for connection audit events."""

    def __init__(self, db: AsyncSession, provider: str = PROVIDER_STRAVA):
        super().__init__(db, IntegrationAuditEvent)
        self.provider = provider

    async def record(
        self,
        user_id: str,
        action: str,
        detail: dict | None = None
    ) -> IntegrationAuditEvent:
        """Append an audit event."""
        return await self.create(
            user_id=user_id,
            provider=self.provider,
            action=action,
            detail=detail,
        )
