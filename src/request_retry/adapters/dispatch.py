"""Dispatch of replayed requests through an ASGI application.

ASGIDispatcher sends a ReplayRequest through the full middleware stack of
the application that originally handled it, using httpx's ASGI transport.
No network connection is involved.

Bodies are re-encoded the way the original request was sent:

- JSON requests are resent as JSON (with their original Content-Type)
- Form requests are resent as url-encoded or multipart form data
- Methods without a body (GET, HEAD, ...) send no body

The stored query string is sent as the query string for every method.

Examples:
    >>> dispatcher = ASGIDispatcher(app)
    >>> response = await dispatcher(replay_request)
    >>> response.status
    200
"""

from typing import Any

import httpx

from request_retry.core.replay import DispatchResponse, ReplayRequest
from request_retry.files import UploadedFile
from request_retry.utils.headers import build_replay_headers, get_header

BODYLESS_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE", "CONNECT"}


def flatten_fields(value: Any, prefix: str = "") -> list[tuple[str, str]]:
    """Flatten structured parameters into form field pairs.

    Nested mappings use bracket notation, lists repeat the field name.

    Example:
        >>> flatten_fields({"a": {"b": 1}, "c": ["x", "y"], "d": None})
        [('a[b]', '1'), ('c', 'x'), ('c', 'y'), ('d', '')]
    """
    if isinstance(value, dict):
        pairs: list[tuple[str, str]] = []
        for key, item in value.items():
            name = f"{prefix}[{key}]" if prefix else str(key)
            pairs.extend(flatten_fields(item, name))
        return pairs
    if isinstance(value, (list, tuple)):
        pairs = []
        for item in value:
            pairs.extend(flatten_fields(item, prefix))
        return pairs
    if value is None:
        return [(prefix, "")]
    if isinstance(value, bool):
        return [(prefix, "1" if value else "0")]
    return [(prefix, str(value))]


def flatten_files(value: Any, prefix: str = "") -> list[tuple[str, tuple[str, bytes, str]]]:
    """Flatten restored uploads into httpx ``files`` tuples."""
    if isinstance(value, UploadedFile):
        return [(prefix, (value.filename, value.content, value.content_type))]
    pairs: list[tuple[str, tuple[str, bytes, str]]] = []
    if isinstance(value, dict):
        for key, item in value.items():
            pairs.extend(flatten_files(item, f"{prefix}[{key}]" if prefix else str(key)))
    elif isinstance(value, (list, tuple)):
        for item in value:
            pairs.extend(flatten_files(item, prefix))
    return pairs


def _group_pairs(pairs: list[tuple[str, str]]) -> dict[str, Any]:
    grouped: dict[str, Any] = {}
    for key, value in pairs:
        if key in grouped:
            existing = grouped[key]
            grouped[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            grouped[key] = value
    return grouped


class ASGIDispatcher:
    """Replays requests through an ASGI application.

    Attributes:
        app: The ASGI application
        scheme: Scheme of the replayed URL
        default_host: Host used when the stored request has no Host header
        timeout: httpx timeout for a single replay
    """

    def __init__(
        self,
        app: Any,
        scheme: str = "http",
        default_host: str = "localhost",
        timeout: float | None = 30.0,
    ) -> None:
        self.app = app
        self.scheme = scheme
        self.default_host = default_host
        self.timeout = timeout

    def build_request(self, request: ReplayRequest) -> dict[str, Any]:
        """Build httpx.AsyncClient.request() arguments for a replay.

        Args:
            request: The replay request

        Returns:
            Keyword arguments for httpx.AsyncClient.request
        """
        method = request.method.upper()
        content_type = get_header(request.headers, "content-type") or ""
        media_type = content_type.split(";", 1)[0].strip().lower()
        is_json = media_type == "application/json" or media_type.endswith("+json")
        host = get_header(request.headers, "host") or self.default_host

        kwargs: dict[str, Any] = {
            "method": method,
            "url": f"{self.scheme}://{host}{request.path}",
        }

        params = flatten_fields(request.query) if request.query else []

        if method in BODYLESS_METHODS:
            kwargs["headers"] = build_replay_headers(request.headers, drop_content_type=True)
            # httpx sends no body for these methods; any captured body goes in the query
            if request.body:
                params.extend(flatten_fields(request.body))
        elif is_json and not request.files:
            kwargs["headers"] = build_replay_headers(request.headers)
            kwargs["json"] = request.body
        else:
            # Form encodings (and multipart boundaries) are regenerated by httpx
            kwargs["headers"] = build_replay_headers(request.headers, drop_content_type=True)
            kwargs["data"] = _group_pairs(flatten_fields(request.body or {}))
            files = flatten_files(request.files)
            if files:
                kwargs["files"] = files

        if params:
            kwargs["params"] = params

        return kwargs

    async def __call__(self, request: ReplayRequest) -> DispatchResponse:
        """Dispatch a replay request and return the application's response."""
        transport = httpx.ASGITransport(app=self.app, raise_app_exceptions=False)
        async with httpx.AsyncClient(transport=transport, timeout=self.timeout) as client:
            response = await client.request(**self.build_request(request))
        return DispatchResponse(status=response.status_code, body=response.content)
