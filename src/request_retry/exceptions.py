"""Custom exceptions for the request retry package.

This module defines the exception hierarchy used to signal capture failures,
storage backend failures, replay dispatch faults and lookups of unknown
retry records.

Examples:
    Handling a storage error::

        from request_retry.exceptions import StorageError

        try:
            retries = await store.query_due(RetryFilter())
        except StorageError as e:
            logger.error("replay.store_unavailable", error=str(e))
            raise

    Handling an unknown record::

        from request_retry.exceptions import NotFoundError

        try:
            await store.update(42, {"status": RetryStatus.COMPLETED})
        except NotFoundError as e:
            logger.warning("replay.record_missing", retry_id=e.retry_id)
"""

from typing import Any


class RetryError(Exception):
    """Base exception for all request retry errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class CaptureError(RetryError):
    """Snapshotting a failed request into a retry record failed.

    Raised when uploaded files cannot be persisted or the request cannot be
    serialized. Capture errors never reach the client: the interceptor logs
    them and returns the original response unchanged.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class StorageError(RetryError):
    """Retry record store operation failed.

    Raised when the backend (database, in-memory store) cannot complete an
    insert, query or update. Store errors are fatal to the batch or capture
    attempt in progress.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the storage error.

    Examples:
        Wrapping a driver error::

            try:
                await conn.execute(stmt)
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to insert retry record: {e}", cause=e) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class DispatchFault(RetryError):
    """Replaying a request raised instead of producing a response.

    The processor treats a dispatch fault like a 500 response: the attempt is
    counted and the fault message becomes the failure reason.

    Attributes:
        message: Human-readable error description.
        retry_id: Id of the record being replayed.
        cause: The exception raised by the dispatcher.
    """

    def __init__(
        self,
        message: str,
        retry_id: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_id = retry_id
        self.cause = cause


class NotFoundError(RetryError):
    """A retry record with the given id does not exist.

    Attributes:
        message: Human-readable error description.
        retry_id: The id that was looked up.
    """

    def __init__(self, message: str, retry_id: int) -> None:
        super().__init__(message)
        self.retry_id = retry_id


class InvalidTransitionError(RetryError):
    """A status change would move a retry record backwards.

    Records only move forward from ``pending`` to a terminal status.

    Attributes:
        message: Human-readable error description.
        current: Status the record currently has.
        target: Status that was requested.
    """

    def __init__(self, message: str, current: Any, target: Any) -> None:
        super().__init__(message)
        self.current = current
        self.target = target
