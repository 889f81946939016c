"""
Shared fixtures for the capability engine tests.

Every test gets its own in-memory SQLite secret store, local key-value
area and engine, so capability state never leaks between tests.
"""

import asyncio
from pathlib import Path
from typing import List

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from savestack.config import Settings
from savestack.database import Base, create_session_maker
from savestack.db.models import AISecret  # noqa: F401  (registers the table)
from savestack.models import Session
from savestack.services.credential_cache import CredentialCache
from savestack.services.engine import CapabilityEngine
from savestack.services.local_store import MemoryKeyValueStore


# =============================================================================
# FAKES
# =============================================================================

class FakeClient:
    """Stand-in for GeminiClient that records the key it was built with."""

    def __init__(self, api_key: str, ping_delay: float = 0.0, ping_error: Exception = None):
        self.api_key = api_key
        self.ping_delay = ping_delay
        self.ping_error = ping_error
        self.pings = 0

    async def ping(self, timeout: float = 8.0) -> None:
        self.pings += 1
        if self.ping_delay:
            await asyncio.sleep(self.ping_delay)
        if self.ping_error is not None:
            raise self.ping_error


class FakeClientFactory:
    """Builds FakeClients and keeps them for inspection."""

    def __init__(self, ping_delay: float = 0.0, ping_error: Exception = None):
        self.ping_delay = ping_delay
        self.ping_error = ping_error
        self.clients: List[FakeClient] = []

    def __call__(self, api_key: str) -> FakeClient:
        client = FakeClient(api_key, self.ping_delay, self.ping_error)
        self.clients.append(client)
        return client


class _HangingSession:
    async def __aenter__(self):
        await asyncio.Event().wait()

    async def __aexit__(self, *exc_info):
        return False


def hanging_session_maker():
    """A session maker whose sessions never open, like an unreachable store."""
    return _HangingSession()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        debug=True,
        data_dir=tmp_path,
        identity_jwt_secret="test-secret",
        api_key="",
        secret_store_timeout_seconds=0.5,
        validation_timeout_seconds=0.1,
    )


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def bare_db_engine():
    """A reachable database without the secrets table."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest.fixture
def local_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def cache(local_store) -> CredentialCache:
    return CredentialCache(local_store)


@pytest.fixture
def user_session() -> Session:
    return Session(user_id="user-1", email="user@example.com")


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def capability_engine(settings, session_maker, local_store, client_factory) -> CapabilityEngine:
    return CapabilityEngine(
        settings=settings,
        session_maker=session_maker,
        local_store=local_store,
        client_factory=client_factory,
    )


@pytest.fixture
async def signed_in_engine(capability_engine, user_session) -> CapabilityEngine:
    await capability_engine.identity.sign_in(user_session)
    return capability_engine
