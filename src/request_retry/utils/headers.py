"""Header utilities for capture and replay.

This module provides functions for:
- Normalizing captured headers to ``name -> [values]`` form
- Case-insensitive header lookups
- Building the header set sent with a replayed request
"""

from collections.abc import Iterable, Mapping
from typing import Any

# Headers that describe the original connection or body encoding. They are
# recomputed by the HTTP client when a request is replayed.
VOLATILE_HEADERS = {
    "host",
    "content-length",
    "transfer-encoding",
    "connection",
    "keep-alive",
    "expect",
    "te",
    "trailer",
    "upgrade",
    "proxy-connection",
}


def _text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1")
    return str(value)


def normalize_headers(
    headers: Mapping[Any, Any] | Iterable[tuple[Any, Any]],
) -> dict[str, list[str]]:
    """Normalize headers to lower-cased names with lists of values.

    Accepts a mapping (values may be single strings or lists) or raw ASGI
    header pairs. Repeated headers keep every value in order.

    Args:
        headers: Mapping or iterable of (name, value) pairs

    Returns:
        Dictionary of lower-cased header name to list of values

    Example:
        >>> normalize_headers([(b"Accept", b"text/html"), (b"accept", b"*/*")])
        {'accept': ['text/html', '*/*']}
    """
    pairs: Iterable[tuple[Any, Any]]
    if isinstance(headers, Mapping):
        pairs = headers.items()
    else:
        pairs = headers

    normalized: dict[str, list[str]] = {}
    for name, value in pairs:
        values = value if isinstance(value, (list, tuple)) else [value]
        normalized.setdefault(_text(name).lower(), []).extend(_text(v) for v in values)
    return normalized


def get_header(headers: Mapping[str, Any], name: str) -> str | None:
    """Return the first value of a header, matching the name case-insensitively."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            if isinstance(value, (list, tuple)):
                return _text(value[0]) if value else None
            return _text(value)
    return None


def has_header(headers: Mapping[str, Any], name: str) -> bool:
    wanted = name.lower()
    return any(key.lower() == wanted for key in headers)


def build_replay_headers(
    headers: Mapping[str, list[str]],
    drop_content_type: bool = False,
    additional_volatile: list[str] | None = None,
) -> list[tuple[str, str]]:
    """Build the headers sent with a replayed request.

    Every stored value is kept, in order, and volatile headers are removed.

    Args:
        headers: Stored headers (name -> list of values)
        drop_content_type: Also remove Content-Type, for bodies whose
            encoding is regenerated (multipart boundaries)
        additional_volatile: Additional header names to remove

    Returns:
        (name, value) pairs, accepted by httpx as request headers

    Example:
        >>> build_replay_headers({"host": ["a"], "accept": ["text/html", "*/*"]})
        [('accept', 'text/html'), ('accept', '*/*')]
    """
    to_remove = set(VOLATILE_HEADERS)
    if drop_content_type:
        to_remove.add("content-type")
    if additional_volatile:
        to_remove.update(h.lower() for h in additional_volatile)

    return [
        (name, value)
        for name, values in headers.items()
        if name.lower() not in to_remove
        for value in values
    ]
