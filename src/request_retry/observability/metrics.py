"""Prometheus metrics for request capture and replay.

Metrics include:

- Capture counter by result (captured, duplicate, skipped, error)
- Replay counter by resulting record status
- Dispatch time histogram
- Batch counter

Examples:
    >>> record_capture("captured")
    >>> record_replay("completed")
    >>> record_dispatch_time(0.150)
"""

from prometheus_client import Counter, Histogram

# Labels: result (captured, duplicate, skipped, error)
captures_total = Counter(
    "request_retry_captures_total",
    "Failed requests seen by the capture interceptor",
    ["result"],
)

# Labels: status (pending, completed, failed, completed_with_error)
replays_total = Counter(
    "request_retry_replays_total",
    "Replay attempts by resulting record status",
    ["status"],
)

dispatch_seconds = Histogram(
    "request_retry_dispatch_seconds",
    "Time spent dispatching a replayed request",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

batches_total = Counter(
    "request_retry_batches_total",
    "Replay batches processed",
)

batch_records_total = Counter(
    "request_retry_batch_records_total",
    "Records processed by replay batches",
)


def record_capture(result: str) -> None:
    """Record the result of a capture attempt.

    Args:
        result: captured, duplicate, skipped or error
    """
    captures_total.labels(result=result).inc()


def record_replay(status: str) -> None:
    """Record a replay attempt by the status the record ended up in."""
    replays_total.labels(status=status).inc()


def record_dispatch_time(seconds: float) -> None:
    dispatch_seconds.observe(seconds)


def record_batch(records: int) -> None:
    """Record a processed batch and the number of records it covered."""
    batches_total.inc()
    batch_records_total.inc(records)
