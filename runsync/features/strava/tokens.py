"""
Access token lifecycle.

Decides whether a stored access token is still usable and refreshes it
when it is not. Nothing here writes to the database: a refresh comes back
as a TokenRotation and the caller stores it with a conditional update,
so concurrent refreshes for one user are serialized by the database.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .crypto import TokenCipher
from .exceptions import NotConnectedError
from .models import IntegrationCredential
from .oauth import StravaOAuth

logger = logging.getLogger(__name__)


DEFAULT_SAFETY_MARGIN_SECONDS = 300


@dataclass(frozen=True)
class TokenRotation:
    """Refreshed token pair, encrypted and ready to store."""

    access_token_encrypted: str
    refresh_token_encrypted: str
    expires_at: int
    previous_expires_at: int


@dataclass(frozen=True)
class AccessTokenResult:
    access_token: str
    rotation: Optional[TokenRotation] = None

    @property
    def refreshed(self) -> bool:
        return self.rotation is not None


class TokenLifecycleManager:
    """
    Usage:
        manager = TokenLifecycleManager(cipher, oauth)
        result = await manager.ensure_valid_access_token(credential)
        if result.rotation:
            ...persist result.rotation...
    """

    def __init__(
        self,
        cipher: TokenCipher,
        oauth: StravaOAuth,
        safety_margin_seconds: int = DEFAULT_SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self.cipher = cipher
        self.oauth = oauth
        self.safety_margin_seconds = safety_margin_seconds
        self._clock = clock

    def needs_refresh(self, credential: IntegrationCredential) -> bool:
        """True once the token is inside the safety margin of its expiry."""
        expires_at = credential.expires_at or 0
        return self._clock() >= expires_at - self.safety_margin_seconds

    async def ensure_valid_access_token(
        self,
        credential: IntegrationCredential
    ) -> AccessTokenResult:
        """
        Return a plaintext access token that is safe to use now.

        Raises:
            NotConnectedError: Credential is disconnected or has no tokens
            DecryptionError: Stored ciphertext cannot be decrypted
            ProviderAuthError: Refresh token was revoked
            ProviderRateLimitError, ProviderUnavailableError: Transient refresh failure
        """
        if not credential.connected or not credential.has_tokens:
            raise NotConnectedError(f"User {credential.user_id} is not connected")

        if not self.needs_refresh(credential):
            return AccessTokenResult(
                access_token=self.cipher.decrypt(credential.access_token_encrypted)
            )

        logger.info(f"Refreshing Strava token for user {credential.user_id}")
        refresh_token = self.cipher.decrypt(credential.refresh_token_encrypted)
        grant = await self.oauth.refresh_token(refresh_token)

        rotation = TokenRotation(
            access_token_encrypted=self.cipher.encrypt(grant.access_token),
            refresh_token_encrypted=self.cipher.encrypt(grant.refresh_token),
            expires_at=grant.expires_at,
            previous_expires_at=credential.expires_at,
        )
        return AccessTokenResult(access_token=grant.access_token, rotation=rotation)
