"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Generator

import pytest
from fastapi.testclient import TestClient

from src.linkguard.config import (
    AdminSettings,
    CryptoSettings,
    DatabaseSettings,
    RetentionSettings,
    SecuritySettings,
    Settings,
)
from src.linkguard.core.blocklist import BlockList
from src.linkguard.core.crypto import SealedRecordCodec
from src.linkguard.core.rate_limiter import SlidingWindowLimiter
from src.linkguard.core.store import Store
from src.linkguard.main import create_app

TEST_KEY_HEX = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
TEST_ADMIN_USERNAME = "admin"
TEST_ADMIN_PASSWORD = "Test&Pass<123>"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(tmp_path: Path) -> Generator[Store, None, None]:
    """SQLite store in a temporary directory."""
    with Store(f"sqlite:///{tmp_path / 'test.db'}") as opened:
        yield opened


@pytest.fixture
def codec() -> SealedRecordCodec:
    return SealedRecordCodec.from_hex(TEST_KEY_HEX)


@pytest.fixture
def blocklist(store: Store, clock: FakeClock) -> BlockList:
    return BlockList(store, clock=clock)


@pytest.fixture
def limiter(store: Store, blocklist: BlockList, clock: FakeClock) -> SlidingWindowLimiter:
    return SlidingWindowLimiter(
        store,
        blocklist,
        window_seconds=60,
        max_requests=50,
        auto_block_hours=1,
        sample_retention_seconds=300,
        clock=clock,
    )


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings for an isolated app: temp database, no background sweeps."""
    return Settings(
        log_level="DEBUG",
        environment="test",
        security=SecuritySettings(rate_window_seconds=60, rate_max_requests=5, auto_block_hours=1),
        crypto=CryptoSettings(encryption_key=TEST_KEY_HEX),
        retention=RetentionSettings(retention_days=30, background_sweeps_enabled=False),
        database=DatabaseSettings(url=f"sqlite:///{tmp_path / 'app.db'}"),
        admin=AdminSettings(username=TEST_ADMIN_USERNAME, password=TEST_ADMIN_PASSWORD),
    )


@pytest.fixture
def test_client(test_settings: Settings, clock: FakeClock) -> Generator[TestClient, None, None]:
    """FastAPI test client running the full lifespan against the test settings."""
    app = create_app(test_settings, clock=clock)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def csrf_headers(test_client: TestClient) -> Dict[str, str]:
    """Start a session and return the header carrying its CSRF token."""
    response = test_client.get("/api/csrf-token")
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["csrf_token"]}


@pytest.fixture
def admin_headers(test_client: TestClient) -> Dict[str, str]:
    """Log in as the seeded admin and return the CSRF header for the new session."""
    response = test_client.post(
        "/api/admin/login",
        json={"username": TEST_ADMIN_USERNAME, "password": TEST_ADMIN_PASSWORD},
    )
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["csrf_token"]}


@pytest.fixture
def valid_generate_request() -> Dict[str, Any]:
    return {"phone": "+14155550123", "message": "Hello there"}
