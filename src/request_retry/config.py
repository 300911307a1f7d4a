"""Configuration module for the request retry package.

This module provides the RetryConfig class that controls where retry records
and captured files are stored, the default retry policy applied at capture
time and how replay batches run.

Example:
    Basic usage with defaults:

        >>> config = RetryConfig()
        >>> config.table_name
        'request_retries'
        >>> config.max_retries
        3

    Custom configuration:

        >>> config = RetryConfig(
        ...     database_url="postgresql+asyncpg://app@db/app",
        ...     storage_root="/var/lib/app/storage",
        ...     max_retries=5,
        ...     delay=60,
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['REQUEST_RETRY_MAX_RETRIES'] = '5'
        >>> os.environ['REQUEST_RETRY_DELAY'] = '30'
        >>> config = RetryConfig.from_env()
"""

import os
import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_HEADER_NAME_RE = re.compile(r"^[A-Za-z0-9!#$%&'*+.^_`|~-]+$")


class RetryConfig(BaseModel):
    """Configuration for request capture and replay.

    Attributes:
        table_name: Name of the relational table holding retry records.
            Default is "request_retries".
        database_url: SQLAlchemy async database URL for the retry table.
            Default is a local SQLite file.
        storage_disk: Where captured uploads are kept. "local" writes them
            below storage_root on disk, "memory" keeps them in process.
        storage_root: Root directory of the "local" storage disk.
        temp_directory: Namespace (sub-directory) for captured uploads.
        max_retries: Retry ceiling used when a route does not declare one.
            Must be >= 0. Default is 3.
        delay: Seconds to wait after a failed attempt before the record is
            due again. Must be >= 0. Default is 0.
        replay_header: Header marking a request as a replay. Requests
            carrying it are never captured.
        concurrency: Number of records replayed at once in a batch (1-64).
            Default is 1 (sequential, in id order).
        log_level: Log level for configure_logging().
        json_logs: Emit JSON logs (True) or console output (False).

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    table_name: str = Field(
        default="request_retries",
        description="Table that stores retry records",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///request_retries.db",
        description="SQLAlchemy async URL of the database holding the retry table",
    )
    storage_disk: Literal["local", "memory"] = Field(
        default="local",
        description="Storage disk for captured uploads",
    )
    storage_root: str = Field(
        default="storage",
        description="Root directory of the local storage disk",
    )
    temp_directory: str = Field(
        default="retry_temp",
        description="Namespace for captured uploads",
    )
    max_retries: int = Field(
        default=3,
        description="Default retry ceiling when the route declares none",
    )
    delay: int = Field(
        default=0,
        description="Seconds between a failed attempt and the next one",
    )
    replay_header: str = Field(
        default="X-Retry-Attempt",
        description="Header that marks a replayed request",
    )
    concurrency: int = Field(
        default=1,
        description="Records replayed concurrently within a batch (1-64)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level",
    )
    json_logs: bool = Field(
        default=True,
        description="Emit JSON formatted logs",
    )

    model_config = {"frozen": True}

    @field_validator("table_name")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Validate the table name is a plain SQL identifier.

        Raises:
            ValueError: If the name contains anything but letters, digits
                and underscores, or starts with a digit.
        """
        if not _TABLE_NAME_RE.match(v):
            raise ValueError(f"table_name must be a plain SQL identifier, got {v!r}")
        return v

    @field_validator("max_retries", "delay")
    @classmethod
    def validate_non_negative(cls, v: int, info: Any) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0, got {v}")
        return v

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if not (1 <= v <= 64):
            raise ValueError(f"concurrency must be between 1 and 64, got {v}")
        return v

    @field_validator("replay_header")
    @classmethod
    def validate_replay_header(cls, v: str) -> str:
        """Validate the replay marker is a legal header name."""
        v = v.strip()
        if not v or not _HEADER_NAME_RE.match(v):
            raise ValueError(f"replay_header must be a valid HTTP header name, got {v!r}")
        return v

    @field_validator("temp_directory")
    @classmethod
    def validate_temp_directory(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v or ".." in v.split("/"):
            raise ValueError(f"temp_directory must be a relative path, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {v}. Valid levels are: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )
        return level

    @classmethod
    def from_env(cls, prefix: str = "REQUEST_RETRY_") -> "RetryConfig":
        """Create configuration from environment variables.

        Variable names are the upper-cased field names with the prefix, e.g.
        REQUEST_RETRY_TABLE_NAME or REQUEST_RETRY_MAX_RETRIES.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            RetryConfig instance populated from environment variables.

        Example:
            >>> import os
            >>> os.environ['REQUEST_RETRY_STORAGE_DISK'] = 'memory'
            >>> RetryConfig.from_env().storage_disk
            'memory'
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "table_name": str,
            "database_url": str,
            "storage_disk": str,
            "storage_root": str,
            "temp_directory": str,
            "max_retries": int,
            "delay": int,
            "replay_header": str,
            "concurrency": int,
            "log_level": str,
            "json_logs": bool,
        }

        for field_name, field_type in field_types.items():
            env_value = os.environ.get(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue

            if field_type is int:
                config_dict[field_name] = int(env_value)
            elif field_type is bool:
                config_dict[field_name] = env_value.strip().lower() in {"1", "true", "yes", "on"}
            else:
                config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RetryConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
