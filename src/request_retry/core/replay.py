"""Reconstruction of replayable requests from retry records.

A replay request carries everything the host pipeline needs to handle the
original request again: method, path, query, body, headers and uploads.
Uploaded files are re-read from blob storage; files that disappeared are
skipped rather than failing the replay.

The replay marker header (``X-Retry-Attempt`` by default) is added with the
record id, so that a replay that fails again is not captured a second time.

Examples:
    Building and dispatching a replay::

        from request_retry.core.replay import build_replay_request

        request = build_replay_request(record, blobs, replay_header="X-Retry-Attempt")
        response = await dispatcher(request)
        # response.status == 200
"""

from collections.abc import Awaitable, Callable
from typing import Any

from request_retry.files import BlobStorage, materialize_uploads
from request_retry.models import RetryRecord


class ReplayRequest:
    """A request rebuilt from a retry record.

    Attributes:
        retry_id: Id of the record being replayed
        method: HTTP method
        path: URL path with a leading slash
        body: Structured body (form fields or JSON payload)
        headers: Stored headers (name -> list of values), including the marker
        files: Field name to UploadedFile (lists and dicts nest)
        query: Query string parameters
    """

    def __init__(
        self,
        retry_id: int | None,
        method: str,
        path: str,
        body: Any,
        headers: dict[str, list[str]],
        files: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
    ) -> None:
        self.retry_id = retry_id
        self.method = method
        self.path = path
        self.body = body
        self.headers = headers
        self.files = files or {}
        self.query = query or {}


class DispatchResponse:
    """Response produced by dispatching a replay request.

    Attributes:
        status: HTTP status code
        body: Response body as bytes
    """

    def __init__(self, status: int, body: bytes = b"") -> None:
        self.status = status
        self.body = body


Dispatcher = Callable[[ReplayRequest], Awaitable[DispatchResponse]]


def build_replay_request(
    record: RetryRecord,
    blobs: BlobStorage,
    replay_header: str = "X-Retry-Attempt",
) -> ReplayRequest:
    """Rebuild the request stored in a retry record.

    Args:
        record: Record to replay
        blobs: Storage holding the record's uploaded files
        replay_header: Name of the replay marker header

    Returns:
        ReplayRequest tagged with the replay marker
    """
    marker = replay_header.lower()
    headers = {name: list(values) for name, values in record.headers.items() if name.lower() != marker}
    headers[marker] = [str(record.id)]

    return ReplayRequest(
        retry_id=record.id,
        method=record.method,
        path="/" + record.uri.lstrip("/"),
        body=record.body,
        headers=headers,
        files=materialize_uploads(record.files, blobs),
        query=record.query,
    )
