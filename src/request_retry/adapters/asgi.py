"""ASGI middleware adapter for FastAPI and Starlette applications.

This module provides the capture interceptor as Starlette middleware. The
middleware:
1. Buffers the request body before handing the request to the application
2. Lets the application handle the request unchanged
3. On a 5xx response (or an unhandled exception) converts the request to
   the internal IncomingRequest format and captures it

The response is never altered. Unhandled exceptions are re-raised after the
capture attempt so the outer error handling still sees them.

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from request_retry.adapters.asgi import ASGIRetryMiddleware
        from request_retry.config import RetryConfig
        from request_retry.files import build_blob_storage
        from request_retry.storage import build_store

        config = RetryConfig.from_env()
        app = FastAPI()
        app.add_middleware(
            ASGIRetryMiddleware,
            store=build_store(config),
            blobs=build_blob_storage(config),
            config=config,
        )
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

from starlette.datastructures import UploadFile
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response
from starlette.types import Message

from request_retry.config import RetryConfig
from request_retry.core.capture import IncomingRequest, RetryCapture, is_server_error
from request_retry.events import OutcomeNotifier
from request_retry.files import BlobStorage, UploadedFile
from request_retry.observability.logging import get_logger
from request_retry.observability.metrics import record_capture
from request_retry.routing import RouteInfo, RoutePolicy
from request_retry.storage.base import RetryStore
from request_retry.utils.headers import normalize_headers

logger = get_logger(__name__)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def group_items(items: list[tuple[str, Any]]) -> dict[str, Any]:
    """Group repeated keys into lists, keeping single keys scalar.

    Example:
        >>> group_items([("a", "1"), ("b", "2"), ("a", "3")])
        {'a': ['1', '3'], 'b': '2'}
    """
    grouped: dict[str, Any] = {}
    for key, value in items:
        if key not in grouped:
            grouped[key] = value
        elif isinstance(grouped[key], list):
            grouped[key].append(value)
        else:
            grouped[key] = [grouped[key], value]
    return grouped


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


class ASGIRetryMiddleware(BaseHTTPMiddleware):
    """ASGI middleware capturing failed requests for later replay.

    Attributes:
        config: Configuration object
        capture: Core capture interceptor
    """

    def __init__(
        self,
        app: Any,
        store: RetryStore,
        blobs: BlobStorage,
        config: RetryConfig | None = None,
        route_policy: RoutePolicy | None = None,
        notifier: OutcomeNotifier | None = None,
    ) -> None:
        """Initialize the ASGI middleware.

        Args:
            app: The ASGI application
            store: Retry record store
            blobs: Storage for uploaded files
            config: Configuration object (uses defaults if not provided)
            route_policy: Resolves per-route ceiling and tags
            notifier: Receives RequestCaptured events
        """
        super().__init__(app)
        self.config = config or RetryConfig()
        self.capture = RetryCapture(
            store,
            blobs,
            config=self.config,
            route_policy=route_policy,
            notifier=notifier,
        )

    async def dispatch(
        self,
        request: StarletteRequest,
        call_next: Callable[[StarletteRequest], Awaitable[Response]],
    ) -> Response:
        """Handle a request and capture it if it failed with a server error."""
        # Replays are never captured again
        if self.config.replay_header in request.headers:
            return await call_next(request)

        body = await request.body()

        try:
            response = await call_next(request)
        except Exception:
            await self._capture(request, body, 500)
            raise

        if is_server_error(response.status_code):
            await self._capture(request, body, response.status_code)

        return response

    async def _capture(self, request: StarletteRequest, body: bytes, status_code: int) -> None:
        try:
            incoming = await self._convert_request(request, body)
        except Exception as e:
            logger.error(
                "capture.failed",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                error=str(e),
                error_type=type(e).__name__,
            )
            record_capture("error")
            return

        await self.capture.capture(incoming, status_code)

    async def _convert_request(self, request: StarletteRequest, body: bytes) -> IncomingRequest:
        """Convert a Starlette request to the internal IncomingRequest format.

        The query string is kept apart from the body so that a replay sends
        both where the client sent them. Uploaded files are read into memory.

        Args:
            request: Starlette request object
            body: The buffered request body

        Returns:
            Internal IncomingRequest object
        """
        query = group_items(list(request.query_params.multi_items()))
        content_type = request.headers.get("content-type", "")
        files: dict[str, Any] = {}
        data: Any = None

        if body and is_json_content_type(content_type):
            data = json.loads(body)
        elif body and content_type.lower().startswith(FORM_CONTENT_TYPES):
            data, files = await self._parse_form(request, body)

        return IncomingRequest(
            method=request.method,
            path=request.url.path,
            headers=normalize_headers(request.headers.raw),
            query=query,
            body=data,
            files=files,
            route=self._resolve_route(request),
        )

    async def _parse_form(
        self, request: StarletteRequest, body: bytes
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Parse a buffered form body into fields and uploaded files."""
        sent = False

        async def receive() -> Message:
            nonlocal sent
            if sent:
                return {"type": "http.disconnect"}
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}

        replayed = StarletteRequest(request.scope, receive=receive)
        field_items: list[tuple[str, Any]] = []
        file_items: list[tuple[str, Any]] = []

        async with replayed.form() as form:
            for key, value in form.multi_items():
                if isinstance(value, UploadFile):
                    file_items.append(
                        (
                            key,
                            UploadedFile(
                                filename=value.filename or "",
                                content_type=value.content_type,
                                content=await value.read(),
                            ),
                        )
                    )
                else:
                    field_items.append((key, value))

        return group_items(field_items), group_items(file_items)

    def _resolve_route(self, request: StarletteRequest) -> RouteInfo | None:
        """Return the route that handled the request, if the router recorded one."""
        route = request.scope.get("route")
        endpoint = request.scope.get("endpoint") or getattr(route, "endpoint", None)
        if route is None and endpoint is None:
            return None

        name = getattr(route, "name", None) or getattr(endpoint, "__name__", None)
        return RouteInfo(name=name, endpoint=endpoint)
