"""Prompt templates sent to extraction providers."""

from docgrid.prompts.extraction_prompt import (
    EXTRACTION_RULES,
    build_extraction_prompt,
    format_return_shape,
    format_schema_lines,
)

__all__ = [
    "EXTRACTION_RULES",
    "build_extraction_prompt",
    "format_return_shape",
    "format_schema_lines",
]
