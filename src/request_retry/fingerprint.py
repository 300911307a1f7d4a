"""Request fingerprinting for retry deduplication.

The fingerprint identifies logically identical requests so that repeated
failures of the same call collapse into a single pending retry record. It is
a deduplication key, not a security boundary.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def compute_fingerprint(method: str, path: str, body: Any, query: Mapping[str, Any] | None = None) -> str:
    """Compute a deterministic fingerprint for a request.

    The fingerprint is computed from canonical representations of:
    1. Method, upper-cased
    2. Path, as received
    3. Body, serialized as canonical JSON (sorted keys, compact separators)
    4. Query parameters, as canonical JSON, when the request has any

    The components are joined with a newline and hashed with SHA-256.

    Args:
        method: HTTP method (e.g., "POST", "PUT")
        path: URL path component, without query string
        body: Structured request body (mapping, list or scalar)
        query: Query string parameters

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)

    Examples:
        >>> a = compute_fingerprint("post", "/x", {"b": 1, "a": 2})
        >>> b = compute_fingerprint("POST", "/x", {"a": 2, "b": 1})
        >>> a == b
        True
        >>> a == compute_fingerprint("POST", "/x", {"a": 2, "b": 1}, {"page": "2"})
        False
    """
    components = [
        method.upper(),
        path,
        canonical_json(body),
    ]
    if query:
        components.append(canonical_json(query))
    return hashlib.sha256("\n".join(components).encode("utf-8")).hexdigest()


def canonical_json(value: Any) -> str:
    """Serialize a value to canonical JSON.

    Keys are sorted and separators are compact so that two equal structures
    always produce the same text. Values that JSON cannot represent natively
    fall back to their string form.

    Args:
        value: Value to serialize

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
