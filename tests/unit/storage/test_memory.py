"""Unit tests for MemoryRetryStore.

This test suite covers:
    - Insert, get and id assignment
    - Pending fingerprint lookup
    - Due queries with filters
    - Partial updates and their validation
    - Copy isolation between callers and the store
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from request_retry.exceptions import NotFoundError
from request_retry.models import RetryFilter, RetryStatus
from request_retry.storage.base import RetryStore
from request_retry.storage.memory import MemoryRetryStore

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def test_implements_protocol(store):
    assert isinstance(store, RetryStore)


# ============================================================================
# Basic Operations
# ============================================================================


@pytest.mark.asyncio
async def test_insert_assigns_ids_and_timestamps(store, record_factory):
    first = await store.insert(record_factory())
    second = await store.insert(record_factory(fingerprint="other"))

    assert first.id == 1
    assert second.id == 2
    assert first.created_at is not None
    assert first.updated_at == first.created_at


@pytest.mark.asyncio
async def test_get(store, record_factory):
    inserted = await store.insert(record_factory(tags=["billing"]))
    fetched = await store.get(inserted.id)
    assert fetched == inserted


@pytest.mark.asyncio
async def test_get_missing_raises(store):
    with pytest.raises(NotFoundError) as exc_info:
        await store.get(99)
    assert exc_info.value.retry_id == 99


@pytest.mark.asyncio
async def test_returned_records_are_copies(store, record_factory):
    inserted = await store.insert(record_factory())
    inserted.tags.append("mutated")

    assert (await store.get(inserted.id)).tags == []


# ============================================================================
# Fingerprint lookup
# ============================================================================


@pytest.mark.asyncio
async def test_find_pending_by_fingerprint(store, record_factory):
    inserted = await store.insert(record_factory(fingerprint="abc"))

    found = await store.find_pending_by_fingerprint("abc")

    assert found is not None
    assert found.id == inserted.id
    assert await store.find_pending_by_fingerprint("xyz") is None


@pytest.mark.asyncio
async def test_find_ignores_terminal_records(store, record_factory):
    inserted = await store.insert(record_factory(fingerprint="abc"))
    await store.update(inserted.id, {"status": RetryStatus.COMPLETED})

    assert await store.find_pending_by_fingerprint("abc") is None


# ============================================================================
# Due queries
# ============================================================================


@pytest.mark.asyncio
async def test_query_due_respects_next_attempt(store, record_factory):
    due = await store.insert(record_factory(fingerprint="a", next_attempt_at=NOW))
    await store.insert(record_factory(fingerprint="b", next_attempt_at=NOW + timedelta(minutes=5)))
    unscheduled = await store.insert(record_factory(fingerprint="c", next_attempt_at=None))

    records = await store.query_due(now=NOW)

    assert [r.id for r in records] == [due.id, unscheduled.id]


@pytest.mark.asyncio
async def test_query_due_excludes_terminal(store, record_factory):
    done = await store.insert(record_factory(fingerprint="a"))
    pending = await store.insert(record_factory(fingerprint="b"))
    await store.update(done.id, {"status": RetryStatus.FAILED})

    assert [r.id for r in await store.query_due()] == [pending.id]


@pytest.mark.asyncio
async def test_query_due_filters_compose(store, record_factory):
    r1 = await store.insert(record_factory(fingerprint="a", tags=["billing"]))
    r2 = await store.insert(record_factory(fingerprint="b", tags=["billing", "eu"]))
    r3 = await store.insert(record_factory(fingerprint="c", tags=["orders"]))

    async def ids(**criteria):
        return [r.id for r in await store.query_due(RetryFilter(**criteria))]

    assert await ids() == [r1.id, r2.id, r3.id]
    assert await ids(tag="billing") == [r1.id, r2.id]
    assert await ids(ids=[r1.id, r3.id]) == [r1.id, r3.id]
    assert await ids(ids=[r1.id, r3.id], tag="billing") == [r1.id]
    assert await ids(tag="billing", fingerprint="b") == [r2.id]
    assert await ids(ids=[r3.id], tag="billing") == []


# ============================================================================
# Updates
# ============================================================================


@pytest.mark.asyncio
async def test_update_partial(store, record_factory):
    inserted = await store.insert(record_factory())
    next_attempt = NOW + timedelta(seconds=60)

    updated = await store.update(inserted.id, {"retries_count": 1, "next_attempt_at": next_attempt})

    assert updated.retries_count == 1
    assert updated.next_attempt_at == next_attempt
    assert updated.status is RetryStatus.PENDING
    assert updated.updated_at >= inserted.updated_at
    assert (await store.get(inserted.id)).retries_count == 1


@pytest.mark.asyncio
async def test_update_missing_raises(store):
    with pytest.raises(NotFoundError):
        await store.update(5, {"status": RetryStatus.COMPLETED})


@pytest.mark.asyncio
async def test_update_rejects_other_fields(store, record_factory):
    inserted = await store.insert(record_factory())
    with pytest.raises(ValueError, match="uri"):
        await store.update(inserted.id, {"uri": "/elsewhere"})


@pytest.mark.asyncio
async def test_update_validates_values(store, record_factory):
    inserted = await store.insert(record_factory())
    with pytest.raises(ValueError):
        await store.update(inserted.id, {"retries_count": -1})
    assert (await store.get(inserted.id)).retries_count == 0


@pytest.mark.asyncio
async def test_concurrent_inserts_get_unique_ids(record_factory):
    store = MemoryRetryStore()
    records = await asyncio.gather(
        *(store.insert(record_factory(fingerprint=str(i))) for i in range(20))
    )
    assert sorted(r.id for r in records) == list(range(1, 21))


@pytest.mark.asyncio
async def test_all_returns_every_status(store, record_factory):
    a = await store.insert(record_factory(fingerprint="a"))
    await store.insert(record_factory(fingerprint="b"))
    await store.update(a.id, {"status": RetryStatus.COMPLETED})

    assert [r.status for r in await store.all()] == [RetryStatus.COMPLETED, RetryStatus.PENDING]
