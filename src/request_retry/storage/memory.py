"""In-memory retry record store with asyncio concurrency control.

The MemoryRetryStore is suitable for:
    - Single-process applications
    - Development and testing

Records are deep-copied on the way in and out, so callers never share
mutable state with the store.

Examples:
    Basic usage::

        from request_retry.storage.memory import MemoryRetryStore

        store = MemoryRetryStore()
        record = await store.insert(RetryRecord(method="POST", uri="/x"))
        due = await store.query_due()
"""

import asyncio
from datetime import datetime
from typing import Any

from request_retry.exceptions import NotFoundError
from request_retry.models import RetryFilter, RetryRecord, RetryStatus, utcnow
from request_retry.storage.base import RetryStore, check_update_fields


class MemoryRetryStore(RetryStore):
    """In-memory retry record store.

    Attributes:
        _records: Dictionary mapping ids to RetryRecord objects.
        _next_id: Next id to assign.
        _lock: Lock serializing writes.
    """

    def __init__(self) -> None:
        self._records: dict[int, RetryRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def insert(self, record: RetryRecord) -> RetryRecord:
        async with self._lock:
            now = utcnow()
            stored = record.model_copy(
                deep=True,
                update={"id": self._next_id, "created_at": now, "updated_at": now},
            )
            self._records[self._next_id] = stored
            self._next_id += 1
            return stored.model_copy(deep=True)

    async def get(self, retry_id: int) -> RetryRecord:
        record = self._records.get(retry_id)
        if record is None:
            raise NotFoundError(f"Retry record {retry_id} not found", retry_id=retry_id)
        return record.model_copy(deep=True)

    async def find_pending_by_fingerprint(self, fingerprint: str) -> RetryRecord | None:
        for record in self._records.values():
            if record.status is RetryStatus.PENDING and record.fingerprint == fingerprint:
                return record.model_copy(deep=True)
        return None

    async def query_due(
        self,
        retry_filter: RetryFilter | None = None,
        now: datetime | None = None,
    ) -> list[RetryRecord]:
        retry_filter = retry_filter or RetryFilter()
        now = now or utcnow()
        return [
            record.model_copy(deep=True)
            for retry_id, record in sorted(self._records.items())
            if record.is_due(now) and retry_filter.matches(record)
        ]

    async def update(self, retry_id: int, fields: dict[str, Any]) -> RetryRecord:
        check_update_fields(fields)
        async with self._lock:
            record = self._records.get(retry_id)
            if record is None:
                raise NotFoundError(f"Retry record {retry_id} not found", retry_id=retry_id)

            # Validate through the model so bad values never land in the store
            updated = RetryRecord.model_validate(
                {**record.model_dump(), **fields, "updated_at": utcnow()}
            )
            self._records[retry_id] = updated
            return updated.model_copy(deep=True)

    async def all(self) -> list[RetryRecord]:
        """Return every record in id order, whatever its status."""
        return [record.model_copy(deep=True) for _, record in sorted(self._records.items())]
