"""
Shared fixtures.

Environment must be set before runsync is imported: Settings() is
created at import time and fails without the required Strava values.
"""

import base64
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["STRAVA_CLIENT_ID"] = "12345"
os.environ["STRAVA_CLIENT_SECRET"] = "test-client-secret"
os.environ["STRAVA_REDIRECT_URI"] = "http://testserver/api/v1/integrations/strava/callback"
os.environ["STRAVA_WEBHOOK_VERIFY_TOKEN"] = "test-verify-token"
os.environ["TOKEN_ENCRYPTION_KEY"] = base64.urlsafe_b64encode(b"k" * 32).decode()
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["SYNC_ENABLED"] = "false"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from runsync.models.base import Base  # noqa: E402
from runsync.features.strava import models  # noqa: E402,F401
from runsync.features.strava.crypto import TokenCipher  # noqa: E402


TEST_KEY = os.environ["TOKEN_ENCRYPTION_KEY"]


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh file-backed database per test; sessions do not share a connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def cipher():
    return TokenCipher(TEST_KEY)
