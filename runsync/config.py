"""
Application Configuration

Uses Pydantic Settings for type-safe configuration.
Provider credentials and the token encryption key are required:
a missing value fails startup instead of the first OAuth call.
"""

import base64
import binascii
from typing import Annotated, List

from pydantic_settings import BaseSettings, NoDecode
from pydantic import Field, field_validator, ConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    # === Core ===
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # === Database ===
    database_url: str = Field(
        default="sqlite:///./runsync.db",
        description="Database connection URL"
    )

    # === CORS ===
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # === Frontend ===
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL the OAuth callback redirects back to"
    )

    # === Strava (required) ===
    strava_client_id: str
    strava_client_secret: str
    strava_redirect_uri: str
    strava_webhook_verify_token: str
    token_encryption_key: str = Field(
        description="URL-safe base64 encoded 32-byte AES key"
    )

    # === Strava (tuning) ===
    strava_scope: str = Field(default="activity:read_all")
    strava_http_timeout_seconds: float = Field(default=10.0, gt=0)
    token_safety_margin_seconds: int = Field(default=300, ge=0)

    # === Reconciliation ===
    sync_enabled: bool = Field(default=True)
    sync_interval_hours: float = Field(default=6.0, gt=0)
    sync_initial_delay_seconds: float = Field(default=60.0, ge=0)
    sync_lookback_hours: int = Field(default=24, ge=1)

    # === Webhooks ===
    webhook_queue_size: int = Field(default=100, ge=1)
    webhook_workers: int = Field(default=2, ge=1)

    @field_validator('database_url')
    @classmethod
    def fix_postgres_url(cls, v: str) -> str:
        """Fix Render/Railway postgres:// URL to postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('token_encryption_key')
    @classmethod
    def check_encryption_key(cls, v: str) -> str:
        """Key must decode to exactly 32 bytes (AES-256)."""
        try:
            raw = base64.urlsafe_b64decode(v.encode())
        except (binascii.Error, ValueError):
            raise ValueError("token_encryption_key is not valid base64")
        if len(raw) != 32:
            raise ValueError("token_encryption_key must decode to 32 bytes")
        return v

    @field_validator(
        'strava_client_id',
        'strava_client_secret',
        'strava_redirect_uri',
        'strava_webhook_verify_token',
    )
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
