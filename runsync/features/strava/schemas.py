"""
Strava schemas.

Pydantic models for provider payloads and API responses.
"""

from datetime import datetime
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Provider payloads
# =============================================================================

class TokenGrant(BaseModel):
    """Token pair returned by the OAuth token endpoint."""

    access_token: str
    refresh_token: str
    expires_at: int
    external_account_id: Optional[str] = None


class StravaActivityPayload(BaseModel):
    """
    Activity summary as returned by /athlete/activities and /activities/{id}.

    Only the fields the importer needs; everything else is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    name: Optional[str] = None
    type: Optional[str] = None
    sport_type: Optional[str] = None
    start_date: datetime
    start_date_local: Optional[datetime] = None
    distance: float = 0.0
    moving_time: int = 0
    elapsed_time: Optional[int] = None


class WebhookEvent(BaseModel):
    """Push subscription event. Transient, never persisted."""

    model_config = ConfigDict(extra="ignore")

    object_type: str
    aspect_type: str
    object_id: int
    owner_id: int
    subscription_id: Optional[int] = None
    event_time: Optional[int] = None
    updates: dict[str, Any] = Field(default_factory=dict)

    @property
    def external_activity_id(self) -> str:
        return str(self.object_id)

    @property
    def external_account_id(self) -> str:
        return str(self.owner_id)


# =============================================================================
# API responses
# =============================================================================

class AuthorizeResponse(BaseModel):
    auth_url: str


class StravaStatus(BaseModel):
    """Connection status. Never carries tokens."""

    connected: bool
    last_synced_at: Optional[datetime] = None
    external_account_id: Optional[str] = None


class ManualSyncResponse(BaseModel):
    imported_count: int
    considered_count: int


class DisconnectResponse(BaseModel):
    connected: bool = False


class WebhookAck(BaseModel):
    received: bool = True
