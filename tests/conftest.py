"""
Pytest configuration and shared fixtures for api_conventions tests.
"""

from datetime import UTC, datetime, timedelta

import pytest

from api_conventions.config import GatewayConfig
from api_conventions.storage.memory import MemoryStorageAdapter


class FakeClock:
    """Manually advanced UTC clock for TTL tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorageAdapter:
    """Create a fresh memory storage adapter for each test."""
    return MemoryStorageAdapter()


@pytest.fixture
def config() -> GatewayConfig:
    """Config with a short wait timeout so contention tests stay fast."""
    return GatewayConfig(
        idempotency_ttl_seconds=3600,
        wait_policy="wait",
        execution_timeout_seconds=5,
        wait_poll_interval_seconds=0.01,
    )


@pytest.fixture
def sample_idempotency_key() -> str:
    return "7f41dba9-4c8e-4f7b-9d8a-3c2e1b0a9f87"
