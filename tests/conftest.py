"""
Pytest configuration and shared fixtures for request_retry tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from request_retry.config import RetryConfig
from request_retry.events import OutcomeNotifier
from request_retry.files import MemoryBlobStorage
from request_retry.models import RetryRecord
from request_retry.storage.memory import MemoryRetryStore


class FixedClock:
    """Clock returning a settable time, advanced explicitly by tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FixedClock:
    """Provide a clock fixed at 2024-01-01 12:00 UTC."""
    return FixedClock(datetime(2024, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def config() -> RetryConfig:
    """Provide a config using the in-memory storage disk."""
    return RetryConfig(storage_disk="memory")


@pytest.fixture
def store() -> MemoryRetryStore:
    """Provide a fresh in-memory retry store."""
    return MemoryRetryStore()


@pytest.fixture
def blobs() -> MemoryBlobStorage:
    """Provide a fresh in-memory blob storage."""
    return MemoryBlobStorage()


@pytest.fixture
def events() -> list[Any]:
    """Collects events delivered to the notifier fixture."""
    return []


@pytest.fixture
def notifier(events: list[Any]) -> OutcomeNotifier:
    """Provide a notifier recording every event in the events fixture."""
    return OutcomeNotifier([events.append])


@pytest.fixture
def sample_request_body() -> dict[str, Any]:
    """Provide a sample request body for tests."""
    return {"data": "test"}


def make_record(**overrides: Any) -> RetryRecord:
    """Build a pending record for POST /x with sensible defaults."""
    values: dict[str, Any] = {
        "fingerprint": "f" * 64,
        "method": "POST",
        "uri": "/x",
        "headers": {"content-type": ["application/json"]},
        "body": {"data": "test"},
        "tags": [],
        "max_retries": 3,
        "retry_delay": 0,
    }
    values.update(overrides)
    return RetryRecord(**values)


@pytest.fixture
def record_factory():
    """Provide make_record to tests."""
    return make_record
