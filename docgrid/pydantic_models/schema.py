"""Column schema models.

A table's schema is an ordered list of ColumnSpec. The key is the stable
identifier used in extracted row data; the description is what the provider
reads to decide which value belongs in the column.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docgrid.core.errors import DuplicateColumnKey, EmptySchema


class ColumnSpec(BaseModel):
    """One column of a table schema."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str = Field(..., min_length=1)
    desc: str = Field("", alias="description")


class ExtractionJob(BaseModel):
    """Everything one extraction invocation needs once a row is claimed.

    Created per request and discarded afterwards; never persisted.
    """

    model_config = ConfigDict(frozen=True)

    row_id: str
    table_id: str
    document_url: str
    columns: tuple[ColumnSpec, ...]
    provider: str

    @property
    def display_name(self) -> str:
        """Name given to uploaded files on the provider side."""
        return f"table-{self.table_id}-row-{self.row_id}"


def validate_columns(columns: list[ColumnSpec] | tuple[ColumnSpec, ...]) -> None:
    """Check that a schema is non-empty and its keys are unique.

    Raises:
        EmptySchema: No columns.
        DuplicateColumnKey: A key appears more than once.
    """
    if not columns:
        raise EmptySchema()
    seen: set[str] = set()
    for column in columns:
        if column.key in seen:
            raise DuplicateColumnKey(column.key)
        seen.add(column.key)


def columns_from_raw(raw: Any) -> list[ColumnSpec]:
    """Convert a table's stored column JSON into ColumnSpecs.

    Entries without a usable key are skipped; anything that is not a list
    yields an empty schema.
    """
    if not isinstance(raw, list):
        return []
    columns = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        key = str(item.get("key") or "").strip()
        if not key:
            continue
        desc = item.get("desc", item.get("description"))
        columns.append(ColumnSpec(key=key, desc=str(desc or "")))
    return columns
