"""
Pytest configuration and fixtures.
"""
import pytest
from datetime import datetime, timedelta
from cryptography.fernet import Fernet

from linkstore.config import Settings
from linkstore.db import create_engine_from_url, create_session_maker, create_tables
from linkstore.manager import LinkManager


# ============================================
# TEST CONFIGURATION
# ============================================

class FixedClock:
    """Manually advanced clock so expiry checks are deterministic."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def test_encryption_key():
    """Generate a test encryption key."""
    return Fernet.generate_key().decode()


@pytest.fixture
def test_settings():
    """Create test settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        link_request_ttl_seconds=600,
        token_refresh_offset_seconds=60,
        default_device_name="DeviceA",
        debug=False,
    )


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 1, 12, 0, 0))


# ============================================
# DATABASE FIXTURES
# ============================================

@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine using in-memory SQLite."""
    engine = create_engine_from_url("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def file_engine(tmp_path):
    """File-backed SQLite engine; needed when several connections run concurrently."""
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'linkstore.db'}")
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def test_session_maker(test_engine):
    return create_session_maker(test_engine)


@pytest.fixture
def manager(test_session_maker, test_settings, clock):
    """Link manager on the in-memory store with a fixed clock."""
    return LinkManager(
        session_maker=test_session_maker,
        settings=test_settings,
        clock=clock,
    )


@pytest.fixture
async def linked_user(manager, clock):
    """User U1 with an account whose access token expires in an hour."""
    await manager.create_user("U1", "DeviceA")
    await manager.upsert_account(
        "U1", "alice", "AT1", "RT1", None, clock() + timedelta(seconds=3600)
    )
    return "U1"


# ============================================
# MOCK DATA FIXTURES
# ============================================

@pytest.fixture
def mock_token_response():
    """Mock OAuth token endpoint response."""
    return {
        "access_token": "mock-access-token-" + "x" * 100,
        "token_type": "Bearer",
        "refresh_token": "mock-refresh-token-" + "y" * 100,
        "expires_in": 3600,
        "scope": "user-read-playback-state",
    }
