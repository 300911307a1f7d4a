"""Replay processor for due retry records.

The processor is run on demand, by the CLI or an external scheduler. Each
run:

1. Loads the due records matching the filter (ids, tag, fingerprint)
2. Rebuilds and dispatches each record's request through the host pipeline
3. Applies the resulting state transition to the store
4. Deletes stored files of records that reached a terminal status
5. Emits RetrySucceeded / RetryFailed after the store update

Records are isolated from each other: a record whose replay raises is
treated as a 500 response and the batch carries on. Only store failures
(StorageError) abort a batch.

Examples:
    Processing every due record::

        from request_retry.core.processor import ReplayProcessor

        processor = ReplayProcessor(store, blobs, dispatcher)
        result = await processor.process()
        print(f"{result.processed} records processed")

    Processing one tag, printing progress::

        await processor.process(RetryFilter(tag="billing"), report=print)
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime

from request_retry.config import RetryConfig
from request_retry.core.replay import Dispatcher, build_replay_request
from request_retry.core.state_machine import FAULT_STATUS_CODE, Transition, next_transition
from request_retry.events import OutcomeNotifier, RetryFailed, RetrySucceeded
from request_retry.exceptions import DispatchFault, NotFoundError
from request_retry.files import BlobStorage, delete_stored_files
from request_retry.models import RetryFilter, RetryRecord, RetryStatus, utcnow
from request_retry.observability.logging import get_logger
from request_retry.observability.metrics import record_batch, record_dispatch_time, record_replay
from request_retry.storage.base import RetryStore

logger = get_logger(__name__)

Reporter = Callable[[str], None]


def _silent(_line: str) -> None:
    return None


class RecordOutcome:
    """What happened to one record in a batch.

    Attributes:
        retry_id: Id of the record
        status_code: Response status, FAULT_STATUS_CODE for dispatch faults
        status: Status the record ended the batch in (None if it vanished)
        reason: Failure reason, if any
    """

    def __init__(
        self,
        retry_id: int | None,
        status_code: int | None,
        status: RetryStatus | None,
        reason: str | None = None,
    ) -> None:
        self.retry_id = retry_id
        self.status_code = status_code
        self.status = status
        self.reason = reason

    def __repr__(self) -> str:
        status = self.status.value if self.status else None
        return f"RecordOutcome(retry_id={self.retry_id}, status_code={self.status_code}, status={status!r})"


class BatchResult:
    """Result of one processor run.

    Attributes:
        outcomes: One RecordOutcome per processed record, in record order
    """

    def __init__(self, outcomes: list[RecordOutcome]) -> None:
        self.outcomes = outcomes

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    def count(self, status: RetryStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)


class ReplayProcessor:
    """Replays due retry records and records their outcome.

    Attributes:
        store: Retry record store
        blobs: Storage holding captured uploads
        dispatcher: Sends a ReplayRequest through the host pipeline
        config: Configuration (replay header, concurrency)
        notifier: Receives RetrySucceeded / RetryFailed events
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: RetryStore,
        blobs: BlobStorage,
        dispatcher: Dispatcher,
        config: RetryConfig | None = None,
        notifier: OutcomeNotifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.dispatcher = dispatcher
        self.config = config or RetryConfig()
        self.notifier = notifier or OutcomeNotifier()
        self.clock = clock

    async def process(
        self,
        retry_filter: RetryFilter | None = None,
        report: Reporter | None = None,
    ) -> BatchResult:
        """Replay every due record matching the filter.

        Args:
            retry_filter: Restricts the batch to ids / a tag / a fingerprint
            report: Receives one human-readable line per step

        Returns:
            BatchResult with one outcome per processed record

        Raises:
            StorageError: If the store cannot be read or updated
        """
        retry_filter = retry_filter or RetryFilter()
        report = report or _silent

        records = await self.store.query_due(retry_filter, now=self.clock())

        if not records:
            ids = ",".join(str(retry_id) for retry_id in retry_filter.ids or [])
            report(f"No pending retries found (Tag: {retry_filter.tag or 'none'}, IDs: {ids}).")
            record_batch(0)
            return BatchResult([])

        report(f"Found {len(records)} retries to process.")
        logger.info(
            "replay.batch_started",
            records=len(records),
            ids=retry_filter.ids,
            tag=retry_filter.tag,
            fingerprint=retry_filter.fingerprint,
        )

        if self.config.concurrency == 1:
            outcomes = [await self.process_record(record, report) for record in records]
        else:
            semaphore = asyncio.Semaphore(self.config.concurrency)

            async def bounded(record: RetryRecord) -> RecordOutcome:
                async with semaphore:
                    return await self.process_record(record, report)

            # A failing record cancels its siblings before the error propagates
            try:
                async with asyncio.TaskGroup() as group:
                    tasks = [group.create_task(bounded(record)) for record in records]
            except ExceptionGroup as failures:
                raise failures.exceptions[0] from None
            outcomes = [task.result() for task in tasks]

        result = BatchResult(outcomes)
        record_batch(result.processed)
        logger.info(
            "replay.batch_finished",
            processed=result.processed,
            completed=result.count(RetryStatus.COMPLETED),
            pending=result.count(RetryStatus.PENDING),
            failed=result.count(RetryStatus.FAILED),
            completed_with_error=result.count(RetryStatus.COMPLETED_WITH_ERROR),
        )
        return result

    async def process_record(self, record: RetryRecord, report: Reporter | None = None) -> RecordOutcome:
        """Replay one record and apply its outcome.

        Exceptions raised while rebuilding or dispatching the request are
        converted into a DispatchFault and handled like a 500 response.

        Raises:
            StorageError: If the outcome cannot be written to the store
        """
        report = report or _silent
        report(f"Processing retry ID: {record.id}")

        reason: str | None = None
        try:
            request = build_replay_request(record, self.blobs, self.config.replay_header)
            started = time.perf_counter()
            response = await self.dispatcher(request)
            record_dispatch_time(time.perf_counter() - started)
            status_code = response.status
            report(f"Retry ID: {record.id} Response: {status_code}")
        except Exception as e:
            fault = DispatchFault(str(e) or type(e).__name__, retry_id=record.id, cause=e)
            logger.error(
                "replay.dispatch_fault",
                retry_id=record.id,
                error=fault.message,
                error_type=type(e).__name__,
            )
            report(f"Retry ID: {record.id} failed.")
            status_code = FAULT_STATUS_CODE
            reason = fault.message

        transition = next_transition(record, status_code, self.clock(), reason)
        return await self._apply(record, transition)

    async def _apply(self, record: RetryRecord, transition: Transition) -> RecordOutcome:
        if record.id is None:
            raise ValueError("Cannot apply a transition to a record without an id")

        try:
            updated = await self.store.update(record.id, transition.fields)
        except NotFoundError as e:
            logger.warning("replay.record_missing", retry_id=record.id, error=e.message)
            return RecordOutcome(record.id, transition.status_code, None, e.message)

        record_replay(transition.status.value)

        if transition.is_terminal:
            delete_stored_files(record.files, self.blobs)

        if transition.succeeded:
            logger.info(
                "replay.record_completed",
                retry_id=record.id,
                status_code=transition.status_code,
                retries_count=updated.retries_count,
            )
            await self.notifier.emit(RetrySucceeded(record=updated))
        elif transition.is_terminal:
            logger.warning(
                "replay.record_failed",
                retry_id=record.id,
                status=transition.status.value,
                status_code=transition.status_code,
                retries_count=updated.retries_count,
                reason=transition.reason,
            )
            await self.notifier.emit(RetryFailed(record=updated, reason=transition.reason or ""))
        else:
            logger.info(
                "replay.record_rescheduled",
                retry_id=record.id,
                status_code=transition.status_code,
                retries_count=updated.retries_count,
                next_attempt_at=updated.next_attempt_at.isoformat() if updated.next_attempt_at else None,
            )

        return RecordOutcome(record.id, transition.status_code, transition.status, transition.reason)
