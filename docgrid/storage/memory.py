"""In-process row store.

Holds tables and rows in dicts. The claim is a compare-and-set done under
one store-level lock, which is what a database gives you with a conditional
UPDATE. Used by the test suite and for local dry runs.
"""

import threading
from collections.abc import Callable, Collection
from datetime import datetime, timezone
from typing import Any

from docgrid.core.errors import StorageError
from docgrid.pydantic_models.rows import Row, RowStatus, TableRecord
from docgrid.storage.base import RowStore

_ROW_FIELDS = frozenset(Row.model_fields)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRowStore(RowStore):
    """Dict-backed RowStore.

    Reads return copies so callers never mutate stored state directly.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self.clock = clock
        self.tables: dict[str, TableRecord] = {}
        self.rows: dict[str, Row] = {}
        self.claim_attempts = 0
        self._lock = threading.Lock()

    def add_table(self, table: TableRecord) -> TableRecord:
        self.tables[table.id] = table
        return table

    def add_row(self, row: Row) -> Row:
        if row.updated_at is None:
            row = row.model_copy(update={"updated_at": self.clock()})
        self.rows[row.id] = row
        return row

    async def get_table(self, table_id: str) -> TableRecord | None:
        table = self.tables.get(table_id)
        return table.model_copy(deep=True) if table else None

    async def get_row(self, row_id: str, table_id: str) -> Row | None:
        row = self.rows.get(row_id)
        if row is None or row.table_id != table_id:
            return None
        return row.model_copy(deep=True)

    async def claim_row(
        self,
        row_id: str,
        eligible_statuses: Collection[RowStatus],
    ) -> int:
        with self._lock:
            self.claim_attempts += 1
            row = self.rows.get(row_id)
            if row is None or row.status not in eligible_statuses:
                return 0
            self.rows[row_id] = row.model_copy(update={
                "status": RowStatus.EXTRACTING,
                "error": None,
                "updated_at": self.clock(),
            })
            return 1

    async def update_row_if_unchanged(self, row_id: str, seen: Row, **fields: Any) -> int:
        self._check_fields(fields)
        with self._lock:
            self.claim_attempts += 1
            row = self.rows.get(row_id)
            if row is None or row.status != seen.status or row.updated_at != seen.updated_at:
                return 0
            self.rows[row_id] = row.model_copy(update={**fields, "updated_at": self.clock()})
            return 1

    def _check_fields(self, fields: dict[str, Any]) -> None:
        unknown = set(fields) - _ROW_FIELDS
        if unknown:
            raise StorageError(f"Unknown row columns: {sorted(unknown)}")

    async def update_row(self, row_id: str, **fields: Any) -> None:
        self._check_fields(fields)
        with self._lock:
            row = self.rows.get(row_id)
            if row is None:
                raise StorageError(f"Row {row_id} does not exist")
            self.rows[row_id] = row.model_copy(update={**fields, "updated_at": self.clock()})
