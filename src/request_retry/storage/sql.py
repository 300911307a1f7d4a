"""Relational retry record store built on SQLAlchemy's async engine.

Records live in a single table (``request_retries`` by default) with JSON
columns for headers, query, body, files and tags. The table name comes from
configuration, so the table is defined with SQLAlchemy Core rather than a
declarative class.

Examples:
    Creating the store and its table::

        from request_retry.config import RetryConfig
        from request_retry.storage.sql import SQLRetryStore

        store = SQLRetryStore.from_config(RetryConfig(database_url="sqlite+aiosqlite:///app.db"))
        await store.create_schema()

        record = await store.insert(record)
        due = await store.query_due()

        await store.dispose()
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    cast,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from request_retry.config import RetryConfig
from request_retry.exceptions import NotFoundError, StorageError
from request_retry.models import RetryFilter, RetryRecord, RetryStatus, ensure_utc, utcnow
from request_retry.storage.base import RetryStore, check_update_fields


def build_table(table_name: str = "request_retries", metadata: MetaData | None = None) -> Table:
    """Define the retry table.

    Args:
        table_name: Name of the table.
        metadata: MetaData to attach the table to; a new one by default.

    Returns:
        SQLAlchemy Table for retry records.
    """
    return Table(
        table_name,
        metadata if metadata is not None else MetaData(),
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("fingerprint", String(255), nullable=True, index=True),
        Column("method", String(16), nullable=False),
        Column("uri", String(2048), nullable=False),
        Column("headers", JSON, nullable=True),
        Column("query", JSON, nullable=True),
        Column("body", JSON, nullable=True),
        Column("files", JSON, nullable=True),
        Column("tags", JSON, nullable=True),
        Column("retries_count", Integer, nullable=False, default=0),
        Column("max_retries", Integer, nullable=False, default=3),
        Column("retry_delay", Integer, nullable=False, default=0),
        Column("next_attempt_at", DateTime(timezone=True), nullable=True),
        Column("status", String(32), nullable=False, default="pending", index=True),
        Column("created_at", DateTime(timezone=True), nullable=True),
        Column("updated_at", DateTime(timezone=True), nullable=True),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLRetryStore(RetryStore):
    """Retry record store backed by a relational table.

    Attributes:
        engine: SQLAlchemy async engine.
        table: Table holding the records.
    """

    def __init__(self, engine: AsyncEngine, table_name: str = "request_retries") -> None:
        self.engine = engine
        self.metadata = MetaData()
        self.table = build_table(table_name, self.metadata)

    @classmethod
    def from_config(cls, config: RetryConfig, **engine_kwargs: Any) -> "SQLRetryStore":
        """Create a store (and its engine) from configuration.

        Args:
            config: Package configuration; database_url and table_name are used.
            **engine_kwargs: Extra arguments for create_async_engine.
        """
        engine = create_async_engine(config.database_url, **engine_kwargs)
        return cls(engine, table_name=config.table_name)

    async def create_schema(self) -> None:
        """Create the retry table if it does not exist."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(self.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create retry table: {e}", cause=e) from e

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def insert(self, record: RetryRecord) -> RetryRecord:
        now = utcnow()
        values = record.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
        values["next_attempt_at"] = record.next_attempt_at
        values["created_at"] = now
        values["updated_at"] = now

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(insert(self.table).values(**values))
                retry_id = result.inserted_primary_key[0]
                return await self._fetch(conn, retry_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert retry record: {e}", cause=e) from e

    async def get(self, retry_id: int) -> RetryRecord:
        try:
            async with self.engine.connect() as conn:
                return await self._fetch(conn, retry_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load retry record {retry_id}: {e}", cause=e) from e

    async def find_pending_by_fingerprint(self, fingerprint: str) -> RetryRecord | None:
        t = self.table
        stmt = (
            select(t)
            .where(t.c.status == RetryStatus.PENDING.value, t.c.fingerprint == fingerprint)
            .order_by(t.c.id)
            .limit(1)
        )
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(stmt)).mappings().first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to look up fingerprint: {e}", cause=e) from e
        return self._to_record(row) if row is not None else None

    async def query_due(
        self,
        retry_filter: RetryFilter | None = None,
        now: datetime | None = None,
    ) -> list[RetryRecord]:
        retry_filter = retry_filter or RetryFilter()
        now = ensure_utc(now) if now is not None else utcnow()
        t = self.table

        stmt = select(t).where(
            t.c.status == RetryStatus.PENDING.value,
            or_(t.c.next_attempt_at.is_(None), t.c.next_attempt_at <= now),
        )
        if retry_filter.ids is not None:
            stmt = stmt.where(t.c.id.in_(retry_filter.ids))
        if retry_filter.tag is not None:
            # Coarse match on the JSON text; exact containment is checked below
            needle = _escape_like(json.dumps(retry_filter.tag))
            stmt = stmt.where(cast(t.c.tags, String).like(f"%{needle}%", escape="\\"))
        if retry_filter.fingerprint is not None:
            stmt = stmt.where(t.c.fingerprint == retry_filter.fingerprint)
        stmt = stmt.order_by(t.c.id)

        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query due retry records: {e}", cause=e) from e

        records = [self._to_record(row) for row in rows]
        return [record for record in records if retry_filter.matches(record)]

    async def update(self, retry_id: int, fields: dict[str, Any]) -> RetryRecord:
        check_update_fields(fields)
        values = dict(fields)
        if "status" in values:
            values["status"] = RetryStatus(values["status"]).value
        if values.get("next_attempt_at") is not None:
            values["next_attempt_at"] = ensure_utc(values["next_attempt_at"])
        values["updated_at"] = utcnow()

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    update(self.table).where(self.table.c.id == retry_id).values(**values)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Retry record {retry_id} not found", retry_id=retry_id)
                return await self._fetch(conn, retry_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update retry record {retry_id}: {e}", cause=e) from e

    async def _fetch(self, conn: AsyncConnection, retry_id: int) -> RetryRecord:
        stmt = select(self.table).where(self.table.c.id == retry_id)
        row = (await conn.execute(stmt)).mappings().first()
        if row is None:
            raise NotFoundError(f"Retry record {retry_id} not found", retry_id=retry_id)
        return self._to_record(row)

    @staticmethod
    def _to_record(row: RowMapping) -> RetryRecord:
        return RetryRecord.model_validate(dict(row))
