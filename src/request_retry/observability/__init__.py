"""Observability utilities for request capture and replay.

This package provides:
- Prometheus metrics for captures, replays and dispatch latency
- Structured logging with contextual information
"""

from request_retry.observability.logging import configure_logging, get_logger
from request_retry.observability.metrics import (
    record_batch,
    record_capture,
    record_dispatch_time,
    record_replay,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_batch",
    "record_capture",
    "record_dispatch_time",
    "record_replay",
]
