"""Projection of sanitized provider data onto a table schema.

- Every schema key is present in the output
- Keys the provider invented are dropped
- Values pass through untouched (no type coercion)
"""

from collections.abc import Iterable
from typing import Any, Protocol


class _Keyed(Protocol):
    key: str


def normalize_to_schema(
    extracted: dict[str, Any],
    columns: Iterable[_Keyed],
) -> dict[str, Any]:
    """Return a dict with exactly the schema's keys.

    A key missing from `extracted` maps to None. This function cannot fail.
    """
    return {column.key: extracted.get(column.key) for column in columns}


def has_all_schema_keys(data: dict[str, Any], columns: Iterable[_Keyed]) -> bool:
    """Check that every schema key is present in data (None values count)."""
    return all(column.key in data for column in columns)
