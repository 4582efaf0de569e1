"""
Pytest fixtures for test infrastructure.

This module is automatically loaded by pytest and provides shared fixtures.
For builders and fake collaborators, see test_helpers.py.
"""

import base64

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

TEST_ENCRYPTION_KEY = "test-master-secret"


# =============================================================================
# Global fixtures (autouse)
# =============================================================================
@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    """Configure the master secret so credentials can be encrypted in tests."""
    from openrevenue.config.settings import settings
    monkeypatch.setattr(settings, "encryption_key", TEST_ENCRYPTION_KEY)
    return TEST_ENCRYPTION_KEY


@pytest.fixture(autouse=True)
def no_webhooks(monkeypatch):
    """Never post job summaries to real webhooks."""
    from openrevenue.config.settings import settings
    monkeypatch.setattr(settings, "slack_webhook_url", "")
    monkeypatch.setattr(settings, "discord_webhook_url", "")


# =============================================================================
# Database
# =============================================================================
@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database bound as the module-wide engine."""
    from openrevenue.archivist import models  # noqa: F401 - registers tables
    from openrevenue.archivist.database import close_db, use_engine

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    factory = use_engine(engine)
    yield factory
    await close_db()


@pytest_asyncio.fixture
async def session(session_factory):
    """A single session committed at the end of the test."""
    from openrevenue.archivist.database import get_session
    async with get_session(session_factory) as session:
        yield session


# =============================================================================
# Signing keys
# =============================================================================
@pytest.fixture
def signing_key():
    """Fresh Ed25519 private key plus its base64 raw public key."""
    private_key = Ed25519PrivateKey.generate()
    public_raw = private_key.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    return private_key, base64.b64encode(public_raw).decode()
