"""Framework adapters for request capture and replay.

This package connects the framework-agnostic core with ASGI applications:

- asgi.py: Starlette/FastAPI middleware capturing failed requests
- dispatch.py: Replays requests through an ASGI application with httpx

The adapters handle the conversion between framework-specific request and
response objects and the core's internal representation.
"""

from request_retry.adapters.asgi import ASGIRetryMiddleware
from request_retry.adapters.dispatch import ASGIDispatcher

__all__ = ["ASGIDispatcher", "ASGIRetryMiddleware"]
