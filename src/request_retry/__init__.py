"""
Capture and replay of failed HTTP requests for ASGI applications.

Requests answered with a server error are stored as retry records and
replayed later, on demand, through the same application.
"""

from request_retry.adapters import ASGIDispatcher, ASGIRetryMiddleware
from request_retry.config import RetryConfig
from request_retry.core import ReplayProcessor, RetryCapture
from request_retry.events import OutcomeNotifier, RequestCaptured, RetryFailed, RetrySucceeded
from request_retry.models import RetryFilter, RetryRecord, RetryStatus
from request_retry.routing import retry

__version__ = "0.1.0"

__all__ = [
    "ASGIDispatcher",
    "ASGIRetryMiddleware",
    "OutcomeNotifier",
    "ReplayProcessor",
    "RequestCaptured",
    "RetryCapture",
    "RetryConfig",
    "RetryFailed",
    "RetryFilter",
    "RetryRecord",
    "RetryStatus",
    "RetrySucceeded",
    "__version__",
    "retry",
]
