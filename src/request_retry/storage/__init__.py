"""Retry record stores.

All stores implement the RetryStore protocol defined in base.py.

Available Stores:
    - MemoryRetryStore: In-memory storage for development and tests
    - SQLRetryStore: Relational table through SQLAlchemy's async engine
"""

from request_retry.config import RetryConfig
from request_retry.storage.base import RetryStore
from request_retry.storage.memory import MemoryRetryStore
from request_retry.storage.sql import SQLRetryStore, build_table


def build_store(config: RetryConfig) -> SQLRetryStore:
    """Create the relational store described by the configuration."""
    return SQLRetryStore.from_config(config)


__all__ = [
    "RetryStore",
    "MemoryRetryStore",
    "SQLRetryStore",
    "build_store",
    "build_table",
]
