"""Core capture, replay and state machine logic.

This package contains the framework-agnostic core:
- capture.py: Snapshots failed requests into retry records
- replay.py: Rebuilds requests from retry records
- processor.py: Replays due records and applies their outcome
- state_machine.py: Forward-only status transitions
"""

from request_retry.core.capture import IncomingRequest, RetryCapture
from request_retry.core.processor import BatchResult, RecordOutcome, ReplayProcessor
from request_retry.core.replay import DispatchResponse, ReplayRequest, build_replay_request

__all__ = [
    "BatchResult",
    "DispatchResponse",
    "IncomingRequest",
    "RecordOutcome",
    "ReplayProcessor",
    "ReplayRequest",
    "RetryCapture",
    "build_replay_request",
]
