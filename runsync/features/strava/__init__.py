"""
Strava integration module.

Usage:
    from runsync.features.strava import StravaIntegration
    from runsync.features.strava.sync import ReconciliationScheduler

Components:
- TokenCipher: encryption of tokens at rest
- StravaOAuth: OAuth flow (auth URL, code exchange, refresh, revoke)
- StravaClient: activity listing and single-activity fetch
- TokenLifecycleManager: refresh decision for stored tokens
- ActivityImporter: idempotent import of runs as workouts
- WebhookDispatcher: async processing of pushed events

Models:
- IntegrationCredential: connection state and encrypted tokens
- ImportedActivity: imported workout
- IntegrationAuditEvent: connect/disconnect trail
"""

from .models import (
    IntegrationCredential,
    ImportedActivity,
    IntegrationAuditEvent,
    PROVIDER_STRAVA,
)
from .exceptions import (
    IntegrationError,
    NotConnectedError,
    DecryptionError,
    ImportConflictError,
    ProviderError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from .crypto import TokenCipher
from .oauth import StravaOAuth
from .client import StravaClient
from .tokens import TokenLifecycleManager, AccessTokenResult, TokenRotation
from .importer import ActivityImporter, ImportResult, ImportStatus
from .repository import (
    CredentialRepository,
    ImportedActivityRepository,
    AuditEventRepository,
)
from .webhooks import WebhookDispatcher
from .integration import StravaIntegration

__all__ = [
    # Models
    "IntegrationCredential",
    "ImportedActivity",
    "IntegrationAuditEvent",
    "PROVIDER_STRAVA",
    # Errors
    "IntegrationError",
    "NotConnectedError",
    "DecryptionError",
    "ImportConflictError",
    "ProviderError",
    "ProviderAuthError",
    "ProviderRateLimitError",
    "ProviderUnavailableError",
    # Components
    "TokenCipher",
    "StravaOAuth",
    "StravaClient",
    "TokenLifecycleManager",
    "AccessTokenResult",
    "TokenRotation",
    "ActivityImporter",
    "ImportResult",
    "ImportStatus",
    "WebhookDispatcher",
    "StravaIntegration",
    # Repositories
    "CredentialRepository",
    "ImportedActivityRepository",
    "AuditEventRepository",
]
