"""SQLAlchemy-backed row store.

Uses SQLAlchemy Core with a synchronous engine; each call runs in a worker
thread via asyncio.to_thread so the event loop is never blocked.

The claim is one statement:

    UPDATE extracted_rows
       SET status = 'extracting', error = NULL, updated_at = :now
     WHERE id = :row_id AND status IN ('uploaded', 'failed')

and the driver's affected-row count decides who won. Stale reclaims and
quota refusals instead match on the status and updated_at the caller read,
so only one writer acting on a given snapshot succeeds.
"""

import asyncio
import logging
from collections.abc import Callable, Collection
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from docgrid.core.errors import StorageError
from docgrid.pydantic_models.rows import Row, RowStatus, TableRecord
from docgrid.storage.base import RowStore

logger = logging.getLogger(__name__)

metadata = MetaData()

user_tables = Table(
    "user_tables",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(64), nullable=True),
    Column("table_name", String(255), nullable=False, default=""),
    Column("columns", JSON, nullable=False, default=list),
)

extracted_rows = Table(
    "extracted_rows",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("table_id", String(64), nullable=False, index=True),
    Column("file_path", Text, nullable=True),
    Column("status", String(16), nullable=False, default=RowStatus.UPLOADED.value),
    Column("data", JSON, nullable=False, default=dict),
    Column("error", Text, nullable=True),
    Column("raw_response", Text, nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=True),
)

_ROW_COLUMNS = frozenset(c.name for c in extracted_rows.columns)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlRowStore(RowStore):
    """RowStore over any SQLAlchemy-supported database.

    Args:
        url_or_engine: Database URL ("sqlite:///rows.db") or an Engine.
        clock: Source of updated_at timestamps.
    """

    def __init__(
        self,
        url_or_engine: str | Engine,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if isinstance(url_or_engine, Engine):
            self.engine = url_or_engine
        else:
            connect_args = {}
            if url_or_engine.startswith("sqlite"):
                connect_args = {"check_same_thread": False}
            self.engine = create_engine(url_or_engine, connect_args=connect_args)
        self.clock = clock

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    # Sync helpers (run in worker threads)

    def _run(self, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except SQLAlchemyError as e:
            logger.error("Row store operation failed: %s", e)
            raise StorageError(str(e)) from e

    def insert_table(self, table: TableRecord) -> None:
        def op():
            with self.engine.begin() as conn:
                conn.execute(insert(user_tables).values(**table.model_dump()))
        self._run(op)

    def insert_row(self, row: Row) -> None:
        values = row.model_dump()
        values["status"] = row.status.value
        values["updated_at"] = row.updated_at or self.clock()

        def op():
            with self.engine.begin() as conn:
                conn.execute(insert(extracted_rows).values(**values))
        self._run(op)

    def _get_table_sync(self, table_id: str) -> TableRecord | None:
        with self.engine.connect() as conn:
            record = conn.execute(
                select(user_tables).where(user_tables.c.id == table_id)
            ).mappings().first()
        return TableRecord(**dict(record)) if record else None

    def _get_row_sync(self, row_id: str, table_id: str) -> Row | None:
        with self.engine.connect() as conn:
            record = conn.execute(
                select(extracted_rows).where(
                    extracted_rows.c.id == row_id,
                    extracted_rows.c.table_id == table_id,
                )
            ).mappings().first()
        if record is None:
            return None
        values = dict(record)
        values["updated_at"] = _as_utc(values["updated_at"])
        values["data"] = values["data"] or {}
        return Row(**values)

    def _claim_sync(self, row_id: str, eligible: list[str]) -> int:
        stmt = (
            update(extracted_rows)
            .where(extracted_rows.c.id == row_id, extracted_rows.c.status.in_(eligible))
            .values(status=RowStatus.EXTRACTING.value, error=None, updated_at=self.clock())
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def _update_if_unchanged_sync(self, row_id: str, seen: Row, fields: dict[str, Any]) -> int:
        if seen.updated_at is None:
            same_stamp = extracted_rows.c.updated_at.is_(None)
        else:
            same_stamp = extracted_rows.c.updated_at == seen.updated_at
        stmt = (
            update(extracted_rows)
            .where(
                extracted_rows.c.id == row_id,
                extracted_rows.c.status == seen.status.value,
                same_stamp,
            )
            .values(**fields, updated_at=self.clock())
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def _update_sync(self, row_id: str, fields: dict[str, Any]) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(extracted_rows)
                .where(extracted_rows.c.id == row_id)
                .values(**fields, updated_at=self.clock())
            )
        if result.rowcount == 0:
            raise StorageError(f"Row {row_id} does not exist")

    # RowStore interface

    async def get_table(self, table_id: str) -> TableRecord | None:
        return await asyncio.to_thread(self._run, lambda: self._get_table_sync(table_id))

    async def get_row(self, row_id: str, table_id: str) -> Row | None:
        return await asyncio.to_thread(self._run, lambda: self._get_row_sync(row_id, table_id))

    async def claim_row(
        self,
        row_id: str,
        eligible_statuses: Collection[RowStatus],
    ) -> int:
        eligible = [RowStatus(s).value for s in eligible_statuses]
        return await asyncio.to_thread(self._run, lambda: self._claim_sync(row_id, eligible))

    @staticmethod
    def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
        unknown = set(fields) - _ROW_COLUMNS
        if unknown:
            raise StorageError(f"Unknown row columns: {sorted(unknown)}")
        if isinstance(fields.get("status"), RowStatus):
            fields["status"] = fields["status"].value
        return fields

    async def update_row(self, row_id: str, **fields: Any) -> None:
        fields = self._column_values(fields)
        await asyncio.to_thread(self._run, lambda: self._update_sync(row_id, fields))

    async def update_row_if_unchanged(self, row_id: str, seen: Row, **fields: Any) -> int:
        fields = self._column_values(fields)
        return await asyncio.to_thread(
            self._run, lambda: self._update_if_unchanged_sync(row_id, seen, fields)
        )
