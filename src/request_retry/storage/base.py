"""Retry record store protocol.

This module defines the interface every retry record backend implements.
The store is the only shared mutable resource of the package: the capture
interceptor inserts records and the replay processor updates them.

Examples:
    Using a store::

        from request_retry.models import RetryFilter, RetryStatus

        record = await store.insert(record)

        for due in await store.query_due(RetryFilter(tag="orders")):
            await store.update(due.id, {"status": RetryStatus.COMPLETED})

Concurrency:
    Stores give no cross-record ordering and take no global lock. In
    particular the capture dedup check (find_pending_by_fingerprint followed
    by insert) is not atomic; two concurrent captures of the same failing
    request may both insert. update() is atomic per call.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from request_retry.models import RetryFilter, RetryRecord

# Fields the replay processor may change through update().
UPDATABLE_FIELDS = frozenset({"status", "retries_count", "next_attempt_at"})


@runtime_checkable
class RetryStore(Protocol):
    """Protocol defining the interface for retry record backends.

    Error Handling:
        Methods raise StorageError for backend failures and NotFoundError
        for unknown ids. Implementations must not leak backend-specific
        exceptions.
    """

    async def insert(self, record: RetryRecord) -> RetryRecord:
        """Persist a new record.

        Assigns ``id``, ``created_at`` and ``updated_at``.

        Args:
            record: Record to insert. Its ``id`` is ignored.

        Returns:
            The stored record with its assigned id.

        Raises:
            StorageError: If the backend fails.
        """
        ...

    async def get(self, retry_id: int) -> RetryRecord:
        """Fetch a record by id.

        Raises:
            NotFoundError: If no record has this id.
        """
        ...

    async def find_pending_by_fingerprint(self, fingerprint: str) -> RetryRecord | None:
        """Return a pending record with this fingerprint, if there is one."""
        ...

    async def query_due(
        self,
        retry_filter: RetryFilter | None = None,
        now: datetime | None = None,
    ) -> list[RetryRecord]:
        """Return due records matching the filter, ordered by id.

        A record is due when its status is pending and its next_attempt_at
        is unset or not after ``now``.

        Args:
            retry_filter: Optional ids/tag/fingerprint restrictions (ANDed).
            now: Reference time; defaults to the current UTC time.
        """
        ...

    async def update(self, retry_id: int, fields: dict[str, Any]) -> RetryRecord:
        """Atomically apply a partial update and return the updated record.

        Args:
            retry_id: Id of the record to change.
            fields: Subset of UPDATABLE_FIELDS with their new values.

        Raises:
            NotFoundError: If no record has this id.
            StorageError: If the backend fails.
            ValueError: If fields contains a non-updatable field.
        """
        ...


def check_update_fields(fields: dict[str, Any]) -> None:
    """Reject updates touching fields the processor must not change."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
