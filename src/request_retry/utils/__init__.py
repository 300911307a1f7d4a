"""Utility modules for request capture and replay."""

from .headers import (
    VOLATILE_HEADERS,
    build_replay_headers,
    get_header,
    has_header,
    normalize_headers,
)

__all__ = [
    "VOLATILE_HEADERS",
    "build_replay_headers",
    "get_header",
    "has_header",
    "normalize_headers",
]
