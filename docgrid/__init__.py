"""PDF-to-table extraction pipeline.

Turns a table row with an uploaded PDF into structured data matching the
table's column schema, using one of several third-party extraction
providers, while keeping the row's state consistent under concurrent
requests, retries and crashed invocations.

Architecture:
    core/            - config, errors, retry, sanitizer, normalizer, lifecycle, quota, logging
    prompts/         - extraction prompt built from a column schema
    providers/       - ChatPDF, Gemini and OpenRouter adapters
    pydantic_models/ - column schema, rows, billing models
    storage/         - row store (in-memory, SQL) and signed document URLs

Usage:
    from docgrid import ExtractionOrchestrator
    from docgrid.storage import SqlRowStore, LocalDocumentStorage

    orchestrator = ExtractionOrchestrator(
        store=SqlRowStore("sqlite:///rows.db"),
        documents=LocalDocumentStorage("documents", "https://files.example", secret),
    )
    result = await orchestrator.extract(table_id, row_id, user_id, provider="gemini")

CLI:
    docgrid extract --db sqlite:///rows.db --table-id t1 --row-id r1
"""

from docgrid.orchestrator import ExtractionOrchestrator
from docgrid.pydantic_models import (
    ColumnSpec,
    ExtractionJob,
    ExtractResult,
    Row,
    RowStatus,
    TableRecord,
)

__all__ = [
    # Main entry point
    "ExtractionOrchestrator",
    # Models
    "ColumnSpec",
    "ExtractionJob",
    "ExtractResult",
    "Row",
    "RowStatus",
    "TableRecord",
]
