"""
Tests for application settings.
"""

import base64

import pytest
from pydantic import ValidationError

from runsync.config import Settings


REQUIRED = (
    "STRAVA_CLIENT_ID",
    "STRAVA_CLIENT_SECRET",
    "STRAVA_REDIRECT_URI",
    "STRAVA_WEBHOOK_VERIFY_TOKEN",
    "TOKEN_ENCRYPTION_KEY",
)


class TestRequiredSettings:

    def test_loads_from_environment(self):
        settings = Settings(_env_file=None)
        assert settings.strava_client_id == "12345"
        assert settings.token_safety_margin_seconds == 300

    @pytest.mark.parametrize("name", REQUIRED)
    def test_missing_value_fails_fast(self, monkeypatch, name):
        monkeypatch.delenv(name)

        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None)
        assert name.lower() in str(exc_info.value)

    def test_blank_client_id_rejected(self, monkeypatch):
        monkeypatch.setenv("STRAVA_CLIENT_ID", "   ")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestEncryptionKey:

    def test_short_key_rejected(self, monkeypatch):
        monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", base64.urlsafe_b64encode(b"x" * 16).decode())
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_invalid_base64_rejected(self, monkeypatch):
        monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", "abc")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


class TestParsing:

    def test_postgres_url_fixed(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@host/db")
        assert Settings(_env_file=None).database_url == "postgresql://u:p@host/db"

    def test_cors_origins_comma_separated(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
        assert Settings(_env_file=None).cors_origins == ["http://a.test", "http://b.test"]
