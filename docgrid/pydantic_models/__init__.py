"""Pydantic models for the extraction pipeline.

Modules:
- schema: ColumnSpec, ExtractionJob and schema validation helpers
- rows: Row, TableRecord, RowStatus, ExtractResult
- billing: PlanTier, Entitlement, UsageSnapshot
"""

from docgrid.pydantic_models.schema import (
    ColumnSpec,
    ExtractionJob,
    validate_columns,
    columns_from_raw,
)
from docgrid.pydantic_models.rows import (
    CLAIMABLE_STATUSES,
    ExtractResult,
    Row,
    RowStatus,
    TableRecord,
)
from docgrid.pydantic_models.billing import (
    Entitlement,
    PlanTier,
    UsageSnapshot,
)

__all__ = [
    # Schema
    "ColumnSpec",
    "ExtractionJob",
    "validate_columns",
    "columns_from_raw",
    # Rows
    "CLAIMABLE_STATUSES",
    "ExtractResult",
    "Row",
    "RowStatus",
    "TableRecord",
    # Billing
    "Entitlement",
    "PlanTier",
    "UsageSnapshot",
]
