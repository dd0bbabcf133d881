"""
Strava-related database models.

Models:
- IntegrationCredential: connection state and encrypted OAuth tokens
- ImportedActivity: workout record created from a provider activity
- IntegrationAuditEvent: connect/disconnect trail
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Integer,
    BigInteger,
    Boolean,
    Float,
    Text,
    JSON,
    UniqueConstraint,
)

from runsync.models.base import Base


PROVIDER_STRAVA = "strava"


class IntegrationCredential(Base):
    """
    Provider connection for one user.

    Tokens are stored only as ciphertext produced by TokenCipher.
    Both token columns are set together on connect and cleared together
    on disconnect; a connected row always carries both.
    """

    __tablename__ = "integration_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_credential_user_provider"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    provider = Column(String(20), nullable=False, default=PROVIDER_STRAVA)

    connected = Column(Boolean, nullable=False, default=False)

    # Strava athlete id, routes webhook events back to a user
    external_account_id = Column(String(32), nullable=True, index=True)

    access_token_encrypted = Column(Text, nullable=True)
    refresh_token_encrypted = Column(Text, nullable=True)
    expires_at = Column(BigInteger, nullable=True)  # Unix timestamp

    scope = Column(String(255), nullable=True)

    # Observability only
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token_encrypted) and bool(self.refresh_token_encrypted)

    def __repr__(self):
        return (
            f"<IntegrationCredential user_id={self.user_id} provider={self.provider} "
            f"connected={self.connected}>"
        )


class ImportedActivity(Base):
    """
    Internal workout record tagged with its provider origin.

    (owner_id, provider, external_id) is unique: a provider activity
    imports at most once per user, and later edits to the workout are
    never overwritten by a re-import.
    """

    __tablename__ = "imported_activities"
    __table_args__ = (
        UniqueConstraint(
            "owner_id", "provider", "external_id",
            name="uq_imported_activity_owner_provider_external",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(36), nullable=False, index=True)
    provider = Column(String(20), nullable=False, default=PROVIDER_STRAVA)
    external_id = Column(String(32), nullable=False)

    date = Column(DateTime, nullable=False, index=True)
    distance_km = Column(Float, nullable=False, default=0.0)
    duration_seconds = Column(Integer, nullable=False, default=0)
    pace_sec_per_km = Column(Integer, nullable=False, default=0)
    workout_type = Column(String(20), nullable=False, default="base")
    notes = Column(Text, nullable=True)

    imported_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ImportedActivity {self.provider}:{self.external_id} {self.distance_km}km>"


class IntegrationAuditEvent(Base):
    """Audit trail for connection lifecycle changes. Never holds token material."""

    __tablename__ = "integration_audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    provider = Column(String(20), nullable=False, default=PROVIDER_STRAVA)
    action = Column(String(32), nullable=False)  # connect, disconnect, auto_disconnect
    detail = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<IntegrationAuditEvent {self.action} user_id={self.user_id}>"
