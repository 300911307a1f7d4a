"""Blob storage for uploaded files captured with a failed request.

Uploaded files are copied to blob storage when a request is captured, turned
back into uploads when the request is replayed and deleted once the retry
record reaches a terminal status.

Examples:
    Persisting and restoring uploads::

        from request_retry.files import LocalBlobStorage, UploadedFile, persist_uploads

        blobs = LocalBlobStorage("/var/lib/app/storage")
        stored = persist_uploads(
            {"invoice": UploadedFile("invoice.pdf", "application/pdf", b"%PDF-1.7")},
            blobs,
            directory="retry_temp",
        )
        # {"invoice": {"path": "retry_temp/3f2a....pdf", "original_name": "invoice.pdf", ...}}

        uploads = materialize_uploads(stored, blobs)
        delete_stored_files(stored, blobs)
"""

import re
import uuid
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, runtime_checkable

from request_retry.config import RetryConfig
from request_retry.exceptions import CaptureError
from request_retry.models import StoredFile, iter_stored_files
from request_retry.observability.logging import get_logger

logger = get_logger(__name__)

_SUFFIX_RE = re.compile(r"^\.[A-Za-z0-9]{1,15}$")


class UploadedFile:
    """An uploaded file attached to a request.

    Attributes:
        filename: Client supplied file name.
        content_type: Client declared MIME type.
        content: File contents.
    """

    def __init__(
        self,
        filename: str,
        content_type: str | None,
        content: bytes,
    ) -> None:
        self.filename = filename
        self.content_type = content_type or "application/octet-stream"
        self.content = content

    def __repr__(self) -> str:
        return f"UploadedFile(filename={self.filename!r}, size={len(self.content)})"


@runtime_checkable
class BlobStorage(Protocol):
    """Protocol for the storage disk holding captured uploads."""

    def store(self, data: bytes, suggested_name: str, directory: str = "") -> str:
        """Store bytes and return the path they were stored under."""
        ...

    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> None:
        """Delete the file at path. Deleting a missing file is not an error."""
        ...

    def read(self, path: str) -> bytes:
        """Read the file at path.

        Raises:
            FileNotFoundError: If nothing is stored at path.
        """
        ...


def _generated_name(suggested_name: str, directory: str) -> str:
    suffix = PurePosixPath(suggested_name).suffix
    if not _SUFFIX_RE.match(suffix):
        suffix = ""
    name = f"{uuid.uuid4().hex}{suffix}"
    directory = directory.strip("/")
    return f"{directory}/{name}" if directory else name


class LocalBlobStorage:
    """Blob storage on the local filesystem (the "local" disk).

    Paths returned by store() are relative to the root directory.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if not full.is_relative_to(self.root):
            raise ValueError(f"Path escapes storage root: {path}")
        return full

    def store(self, data: bytes, suggested_name: str, directory: str = "") -> str:
        path = _generated_name(suggested_name, directory)
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(data)
        return path

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()


class MemoryBlobStorage:
    """Blob storage kept in a dictionary (the "memory" disk)."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}

    def store(self, data: bytes, suggested_name: str, directory: str = "") -> str:
        path = _generated_name(suggested_name, directory)
        self.blobs[path] = bytes(data)
        return path

    def exists(self, path: str) -> bool:
        return path in self.blobs

    def delete(self, path: str) -> None:
        self.blobs.pop(path, None)

    def read(self, path: str) -> bytes:
        try:
            return self.blobs[path]
        except KeyError:
            raise FileNotFoundError(path) from None


def build_blob_storage(config: RetryConfig) -> BlobStorage:
    """Create the blob storage for the configured storage disk."""
    if config.storage_disk == "memory":
        return MemoryBlobStorage()
    return LocalBlobStorage(config.storage_root)


def persist_uploads(files: Any, blobs: BlobStorage, directory: str = "") -> dict[str, Any]:
    """Copy uploaded files to blob storage, preserving their field structure.

    Args:
        files: Field name to UploadedFile; values may also be lists or
            dicts of uploads for multi-file and nested fields.
        blobs: Storage to copy the files to.
        directory: Namespace inside the storage.

    Returns:
        The same structure with each UploadedFile replaced by a stored file
        descriptor dict.

    Raises:
        CaptureError: If a file cannot be stored. Files stored before the
            failure are deleted again.
    """
    written: list[str] = []

    def walk(value: Any) -> Any:
        if isinstance(value, UploadedFile):
            path = blobs.store(value.content, value.filename, directory)
            written.append(path)
            return StoredFile(
                path=path,
                original_name=value.filename,
                mime_type=value.content_type,
            ).model_dump()
        if isinstance(value, dict):
            return {str(key): walk(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [walk(item) for item in value]
        raise CaptureError(f"Unsupported upload value: {type(value).__name__}")

    try:
        return {str(key): walk(value) for key, value in (files or {}).items()}
    except Exception as e:
        for path in written:
            blobs.delete(path)
        if isinstance(e, CaptureError):
            raise
        raise CaptureError(f"Failed to persist uploaded files: {e}", cause=e) from e


def materialize_uploads(stored: Any, blobs: BlobStorage) -> dict[str, Any]:
    """Turn stored file descriptors back into uploads.

    Descriptors whose file no longer exists are skipped.

    Args:
        stored: Files mapping from a RetryRecord.
        blobs: Storage the files were persisted to.

    Returns:
        Field name to UploadedFile, with the original nesting.
    """

    def walk(value: Any) -> Any:
        if StoredFile.is_descriptor(value):
            descriptor = StoredFile.model_validate(value)
            if not blobs.exists(descriptor.path):
                logger.warning("files.missing", path=descriptor.path)
                return None
            return UploadedFile(
                filename=descriptor.original_name,
                content_type=descriptor.mime_type,
                content=blobs.read(descriptor.path),
            )
        if isinstance(value, dict):
            restored = {}
            for key, item in value.items():
                upload = walk(item)
                if upload is not None:
                    restored[key] = upload
            return restored
        if isinstance(value, list):
            return [item for item in (walk(v) for v in value) if item is not None]
        return None

    return walk(stored or {})


def delete_stored_files(stored: Any, blobs: BlobStorage) -> int:
    """Delete every stored file referenced by a files mapping.

    Failures are logged and do not stop the remaining deletions.

    Returns:
        Number of files deleted.
    """
    deleted = 0
    for descriptor in iter_stored_files(stored or {}):
        try:
            blobs.delete(descriptor.path)
            deleted += 1
        except Exception as e:
            logger.error(
                "files.delete_failed",
                path=descriptor.path,
                error=str(e),
                error_type=type(e).__name__,
            )
    return deleted
