"""Core type definitions and models for request capture and replay.

This module provides the data structures shared by the capture interceptor,
the retry record stores and the replay processor: the retry status, stored
file descriptors, the persistent retry record and the replay filter.

Examples:
    Creating a retry record for insertion::

        from datetime import UTC, datetime
        from request_retry.models import RetryRecord, RetryStatus

        record = RetryRecord(
            fingerprint="a" * 64,
            method="POST",
            uri="/api/orders",
            headers={"content-type": ["application/json"]},
            body={"product_id": "sku-1", "quantity": 2},
            tags=["orders"],
            max_retries=3,
            retry_delay=0,
            next_attempt_at=datetime.now(UTC),
        )

    Filtering due records by tag::

        retries = await store.query_due(RetryFilter(tag="orders"))
"""

from collections.abc import Iterator
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC.

    Some database drivers (SQLite) return naive datetimes even for
    timezone-aware columns. All timestamps in this package are UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RetryStatus(str, Enum):
    """Lifecycle status of a retry record.

    Attributes:
        PENDING: Waiting for (another) replay attempt.
        COMPLETED: A replay returned a 2xx response.
        FAILED: The retry ceiling was reached with server errors.
        COMPLETED_WITH_ERROR: A replay returned a non-retryable status (e.g. 4xx).
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPLETED_WITH_ERROR = "completed_with_error"

    @property
    def is_terminal(self) -> bool:
        return self is not RetryStatus.PENDING


TERMINAL_STATUSES = frozenset(
    {RetryStatus.COMPLETED, RetryStatus.FAILED, RetryStatus.COMPLETED_WITH_ERROR}
)


class StoredFile(BaseModel):
    """Descriptor of an uploaded file persisted for a later replay.

    Attributes:
        path: Path of the file inside the blob storage.
        original_name: Client supplied file name.
        mime_type: Client declared MIME type.
    """

    path: str = Field(..., min_length=1)
    original_name: str = ""
    mime_type: str = "application/octet-stream"

    @classmethod
    def is_descriptor(cls, value: Any) -> bool:
        """Return True if a raw files entry is a file descriptor (not a nested group)."""
        return isinstance(value, dict) and isinstance(value.get("path"), str)


def iter_stored_files(files: Any) -> Iterator[StoredFile]:
    """Yield every file descriptor in a (possibly nested) files mapping.

    Args:
        files: Files mapping as stored on a RetryRecord. Groups may be
            dicts or lists; leaves are descriptor dicts.

    Yields:
        StoredFile for every leaf descriptor.
    """
    if StoredFile.is_descriptor(files):
        yield StoredFile.model_validate(files)
    elif isinstance(files, dict):
        for value in files.values():
            yield from iter_stored_files(value)
    elif isinstance(files, list):
        for value in files:
            yield from iter_stored_files(value)


class RetryRecord(BaseModel):
    """A captured request waiting for, or done with, replay.

    Attributes:
        id: Identifier assigned by the store on insert.
        fingerprint: SHA-256 fingerprint of (method, path, body, query), used
            for deduplication of pending records.
        method: HTTP method of the original request.
        uri: Path of the original request (no query string).
        headers: Header name to list of values.
        query: Query string parameters; repeated keys hold lists.
        body: Structured request body (form fields or JSON payload).
        files: Field name to stored file descriptor; groups nest.
        tags: Tags for operator driven filtering.
        retries_count: Attempts made so far.
        max_retries: Attempt ceiling before the record is marked failed.
        retry_delay: Seconds added to next_attempt_at after a failed attempt.
        next_attempt_at: Earliest time the record is due; None means now.
        status: Current lifecycle status.
        created_at: When the record was inserted.
        updated_at: When the record was last modified.
    """

    id: int | None = Field(default=None, ge=1)
    fingerprint: str | None = Field(default=None, max_length=255)
    method: str = Field(..., min_length=1, max_length=16)
    uri: str = Field(..., max_length=2048)
    headers: dict[str, list[str]] = Field(default_factory=dict)
    query: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    files: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    retries_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=0, ge=0)
    next_attempt_at: datetime | None = None
    status: RetryStatus = RetryStatus.PENDING
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        return v.upper()

    @field_validator("headers", mode="before")
    @classmethod
    def validate_headers(cls, v: Any) -> dict[str, list[str]]:
        """Normalize header values to lists of strings.

        Single values are wrapped in a list so that records written by other
        tools (one value per header) load the same way.
        """
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("headers must be a mapping of name to value(s)")
        normalized: dict[str, list[str]] = {}
        for name, values in v.items():
            if isinstance(values, (list, tuple)):
                normalized[str(name)] = [str(value) for value in values]
            else:
                normalized[str(name)] = [str(values)]
        return normalized

    @field_validator("query", mode="before")
    @classmethod
    def validate_query(cls, v: Any) -> dict[str, Any]:
        return {} if v is None else v

    @field_validator("files", mode="before")
    @classmethod
    def validate_files(cls, v: Any) -> dict[str, Any]:
        if v is None or v == []:
            return {}
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: Any) -> list[str]:
        """Deduplicate tags, keeping their order, and drop empty ones."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        seen: list[str] = []
        for tag in v:
            tag = str(tag)
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @field_validator("next_attempt_at", "created_at", "updated_at")
    @classmethod
    def validate_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    def stored_files(self) -> list[StoredFile]:
        """Return every stored file descriptor attached to this record."""
        return list(iter_stored_files(self.files))

    def is_due(self, now: datetime) -> bool:
        """Return True if the record is pending and its next attempt time has arrived."""
        if self.status is not RetryStatus.PENDING:
            return False
        return self.next_attempt_at is None or self.next_attempt_at <= ensure_utc(now)


class RetryFilter(BaseModel):
    """Restricts which due records a replay batch processes.

    All given criteria are ANDed together. An empty filter matches every
    due record.

    Attributes:
        ids: Only records with one of these ids.
        tag: Only records whose tags contain this tag.
        fingerprint: Only records with exactly this fingerprint.
    """

    ids: list[int] | None = None
    tag: str | None = None
    fingerprint: str | None = None

    model_config = {"frozen": True}

    @field_validator("ids", mode="before")
    @classmethod
    def validate_ids(cls, v: Any) -> list[int] | None:
        if v is None:
            return None
        ids = [int(item) for item in v]
        return ids or None

    @field_validator("tag", "fingerprint")
    @classmethod
    def validate_optional_text(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    def matches(self, record: RetryRecord) -> bool:
        """Return True if the record satisfies every criterion of the filter."""
        if self.ids is not None and record.id not in self.ids:
            return False
        if self.tag is not None and self.tag not in record.tags:
            return False
        if self.fingerprint is not None and record.fingerprint != self.fingerprint:
            return False
        return True
