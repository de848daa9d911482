"""Extraction prompt rendered from a table schema.

The same prompt goes to every provider. It lists the schema, spells out the
output rules, and shows the exact return shape with every key in schema
order, which is what keeps most replies parseable without repair.
"""

import json
from collections.abc import Sequence

from docgrid.core.errors import EmptySchema
from docgrid.pydantic_models.schema import ColumnSpec

EXTRACTION_RULES = """Rules:
1) Return ONLY one raw JSON object. No markdown fences, no explanations.
2) Output keys MUST exactly match the schema keys.
3) If a field is missing/unknown, set its value to null.
4) Values should be concise. Do not include surrounding commentary."""


def format_schema_lines(columns: Sequence[ColumnSpec]) -> str:
    """One `- key: description` line per column."""
    return "\n".join(f"- {col.key}: {col.desc}" for col in columns)


def format_return_shape(columns: Sequence[ColumnSpec]) -> str:
    """Example object with every key mapped to an empty string.

    Keys are JSON-encoded so quotes or backslashes in a key still yield a
    valid example.
    """
    pairs = ", ".join(f'{json.dumps(col.key)}: ""' for col in columns)
    return f"{{ {pairs} }}"


def build_extraction_prompt(columns: Sequence[ColumnSpec]) -> str:
    """Build the extraction instruction for a schema.

    Args:
        columns: Ordered, non-empty list of columns.

    Returns:
        Prompt text. Identical input always yields identical text.

    Raises:
        EmptySchema: If columns is empty.
    """
    if not columns:
        raise EmptySchema()

    return f"""You are a data extraction engine.

Extract data from the provided document based on the schema below.

{EXTRACTION_RULES}

Schema (keys and descriptions):
{format_schema_lines(columns)}

Return format:
{format_return_shape(columns)}"""
