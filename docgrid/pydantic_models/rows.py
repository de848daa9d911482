"""Row and table records as read from the row store, plus the result
returned to callers of the orchestrator."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from docgrid.pydantic_models.schema import ColumnSpec, columns_from_raw


class RowStatus(str, Enum):
    """Lifecycle states of an extracted row."""

    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    FAILED = "failed"


CLAIMABLE_STATUSES: tuple[RowStatus, ...] = (RowStatus.UPLOADED, RowStatus.FAILED)
"""Statuses a row may be claimed from without the stale-extracting bypass."""


class TableRecord(BaseModel):
    """A user table: owner plus its column schema (stored as raw JSON)."""

    id: str
    user_id: str | None = None
    table_name: str = ""
    columns: list[Any] = Field(default_factory=list)

    def column_specs(self) -> list[ColumnSpec]:
        return columns_from_raw(self.columns)


class Row(BaseModel):
    """One document's extraction record."""

    id: str
    table_id: str
    file_path: str | None = None
    status: RowStatus = RowStatus.UPLOADED
    data: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    raw_response: str | None = None
    updated_at: datetime | None = None

    @property
    def has_document(self) -> bool:
        return bool(self.file_path and self.file_path.strip())


class ExtractResult(BaseModel):
    """Synchronous result of one extraction request."""

    status: Literal["extracting", "extracted", "failed"]
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def in_progress(cls) -> "ExtractResult":
        return cls(status="extracting")

    @classmethod
    def extracted(cls, data: dict[str, Any]) -> "ExtractResult":
        return cls(status="extracted", data=data)

    @classmethod
    def failed(cls, error: str) -> "ExtractResult":
        return cls(status="failed", error=error)

    def to_dict(self) -> dict[str, Any]:
        """JSON body with unset fields omitted.

        Null values inside `data` are kept; they mean "not found in document".
        """
        body: dict[str, Any] = {"status": self.status}
        if self.data is not None:
            body["data"] = dict(self.data)
        if self.error is not None:
            body["error"] = self.error
        return body
