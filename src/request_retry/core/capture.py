"""Framework-agnostic capture of failed requests.

The capture interceptor is handed each completed (request, response status)
pair by a framework adapter. When the status is a server error it snapshots
the request into a pending retry record, unless:

1. the request is itself a replay (it carries the replay marker header), or
2. a pending record with the same fingerprint already exists.

Capturing never changes the response the client receives. Any failure while
capturing is logged and swallowed; the failed request is then simply not
retried.

Examples:
    Using the interceptor directly::

        from request_retry.core.capture import IncomingRequest, RetryCapture
        from request_retry.files import MemoryBlobStorage
        from request_retry.storage.memory import MemoryRetryStore

        capture = RetryCapture(MemoryRetryStore(), MemoryBlobStorage())

        request = IncomingRequest(
            method="POST",
            path="/api/orders",
            headers={"content-type": ["application/json"]},
            body={"product_id": "sku-1"},
        )
        record = await capture.capture(request, status_code=503)
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from request_retry.config import RetryConfig
from request_retry.events import OutcomeNotifier, RequestCaptured
from request_retry.files import BlobStorage, delete_stored_files, persist_uploads
from request_retry.fingerprint import compute_fingerprint
from request_retry.models import RetryRecord, RetryStatus, utcnow
from request_retry.observability.logging import get_logger
from request_retry.observability.metrics import record_capture
from request_retry.routing import EndpointRoutePolicy, RouteInfo, RoutePolicy
from request_retry.storage.base import RetryStore
from request_retry.utils.headers import get_header

logger = get_logger(__name__)


class IncomingRequest:
    """Abstract representation of a request that just completed.

    Framework adapters convert their request objects into this format.

    Attributes:
        method: HTTP method
        path: URL path, without query string
        headers: Lower-cased header name to list of values
        body: Structured body (form fields or JSON payload), None without one
        query: Query string parameters; repeated keys hold lists
        files: Field name to UploadedFile (lists and dicts nest)
        route: Route that handled the request, if known
    """

    def __init__(
        self,
        method: str,
        path: str,
        headers: dict[str, list[str]],
        body: Any = None,
        files: dict[str, Any] | None = None,
        route: RouteInfo | None = None,
        query: dict[str, Any] | None = None,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.headers = headers
        self.body = body
        self.files = files or {}
        self.route = route
        self.query = query or {}


def is_server_error(status_code: int) -> bool:
    return 500 <= status_code < 600


class RetryCapture:
    """Captures failed requests as pending retry records.

    Attributes:
        store: Retry record store
        blobs: Storage for uploaded files
        config: Configuration (defaults used when not provided)
        route_policy: Resolves per-route ceiling and tags
        notifier: Receives RequestCaptured events
    """

    def __init__(
        self,
        store: RetryStore,
        blobs: BlobStorage,
        config: RetryConfig | None = None,
        route_policy: RoutePolicy | None = None,
        notifier: OutcomeNotifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.config = config or RetryConfig()
        self.route_policy = route_policy or EndpointRoutePolicy()
        self.notifier = notifier or OutcomeNotifier()
        self.clock = clock

    def is_replay(self, request: IncomingRequest) -> bool:
        """Return True if the request carries the replay marker header."""
        return get_header(request.headers, self.config.replay_header) is not None

    async def capture(self, request: IncomingRequest, status_code: int) -> RetryRecord | None:
        """Store a failed request for replay.

        Args:
            request: The completed request
            status_code: Status of the response that was sent

        Returns:
            The new pending record, or None when nothing was captured
        """
        if self.is_replay(request):
            logger.debug(
                "capture.skipped_replay",
                retry_id=get_header(request.headers, self.config.replay_header),
                status_code=status_code,
            )
            return None

        if not is_server_error(status_code):
            return None

        stored_files: dict[str, Any] = {}
        try:
            fingerprint = compute_fingerprint(
                request.method, request.path, request.body, request.query
            )

            # Not atomic with the insert below; concurrent duplicates may both pass
            existing = await self.store.find_pending_by_fingerprint(fingerprint)
            if existing is not None:
                logger.info(
                    "capture.duplicate",
                    retry_id=existing.id,
                    fingerprint=fingerprint,
                    path=request.path,
                )
                record_capture("duplicate")
                return None

            stored_files = persist_uploads(request.files, self.blobs, self.config.temp_directory)

            max_retries = self.route_policy.max_retries(request.route)
            if max_retries is None:
                max_retries = self.config.max_retries

            record = await self.store.insert(
                RetryRecord(
                    fingerprint=fingerprint,
                    method=request.method,
                    uri=request.path,
                    headers=request.headers,
                    query=request.query,
                    body=request.body,
                    files=stored_files,
                    tags=self.route_policy.tags(request.route),
                    retries_count=0,
                    max_retries=max_retries,
                    retry_delay=self.config.delay,
                    next_attempt_at=self.clock(),
                    status=RetryStatus.PENDING,
                )
            )
        except Exception as e:
            logger.error(
                "capture.failed",
                method=request.method,
                path=request.path,
                status_code=status_code,
                error=str(e),
                error_type=type(e).__name__,
            )
            delete_stored_files(stored_files, self.blobs)
            record_capture("error")
            return None

        logger.info(
            "capture.stored",
            retry_id=record.id,
            fingerprint=record.fingerprint,
            method=record.method,
            path=record.uri,
            status_code=status_code,
            tags=record.tags,
            max_retries=record.max_retries,
        )
        record_capture("captured")
        await self.notifier.emit(RequestCaptured(record=record))
        return record
