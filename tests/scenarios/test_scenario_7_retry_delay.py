"""Scenario 7: Delayed Retries

This module tests the configured delay between attempts:
- Captured records carry the configured delay
- A failed replay is not due again until the delay has passed
"""

from datetime import timedelta

import pytest

from request_retry.adapters.dispatch import ASGIDispatcher
from request_retry.config import RetryConfig
from request_retry.core.processor import ReplayProcessor
from request_retry.models import RetryStatus


@pytest.fixture
def config() -> RetryConfig:
    """Config with a one hour delay between attempts."""
    return RetryConfig(storage_disk="memory", delay=3600)


@pytest.mark.asyncio
async def test_delay_postpones_next_attempt(client, backend, store, processor):
    backend.fail("x", 503)
    await client.post("/x", json={"data": "test"})
    record = (await store.all())[0]
    assert record.retry_delay == 3600

    await processor.process()
    result = await processor.process()

    assert result.processed == 0
    updated = await store.get(record.id)
    assert updated.retries_count == 1
    assert updated.status is RetryStatus.PENDING


@pytest.mark.asyncio
async def test_record_due_after_delay(client, backend, store, blobs, config, app, clock):
    backend.fail("x", 503)
    await client.post("/x", json={"data": "test"})

    clock.now = (await store.all())[0].next_attempt_at
    processor = ReplayProcessor(store, blobs, ASGIDispatcher(app), config=config, clock=clock)

    await processor.process()
    record = (await store.all())[0]
    assert record.next_attempt_at == clock.now + timedelta(seconds=3600)

    backend.recover("x")
    clock.advance(3599)
    assert (await processor.process()).processed == 0

    clock.advance(1)
    assert (await processor.process()).processed == 1
    assert (await store.get(record.id)).status is RetryStatus.COMPLETED
