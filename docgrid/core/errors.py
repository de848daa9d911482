"""Structured error types for the extraction pipeline.

Provides:
- Exceptions raised by pipeline components
- Categories and severities for logging failed extractions
- ExtractionFailure, the structured record logged for each failed row
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DocgridError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(DocgridError):
    """Required configuration (usually an API key) is missing."""


class EmptySchema(DocgridError):
    """The table schema has no columns."""

    def __init__(self, message: str = "Schema must have at least one column"):
        super().__init__(message)


class DuplicateColumnKey(DocgridError):
    """Two columns in one schema share a key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Duplicate column key: {key}")


class ProviderError(DocgridError):
    """A provider call failed.

    Attributes:
        status: HTTP status of the failed response, or None when the failure
            happened before a response arrived.
        transport: True when the request never got a response
            (connection refused, DNS failure, read timeout).
    """

    def __init__(self, message: str, status: int | None = None, transport: bool = False):
        super().__init__(message)
        self.message = message
        self.status = status
        self.transport = transport

    def __repr__(self) -> str:
        return f"ProviderError(status={self.status!r}, message={self.message!r})"


class ProviderTimeout(ProviderError):
    """The provider did not finish processing within the polling bound."""


class QuotaExceeded(DocgridError):
    """The user's plan does not allow another extraction."""

    def __init__(self, tier: str, reason: str):
        self.tier = tier
        self.reason = reason
        super().__init__(reason)


class RowNotFound(DocgridError):
    def __init__(self, row_id: str):
        self.row_id = row_id
        super().__init__("Row not found")


class TableNotFound(DocgridError):
    def __init__(self, table_id: str):
        self.table_id = table_id
        super().__init__("Table not found")


class DocumentMissing(DocgridError):
    """The row has no uploaded PDF."""

    def __init__(self, row_id: str):
        self.row_id = row_id
        super().__init__("PDF file not uploaded")


class SignedUrlError(DocgridError):
    """Object storage could not produce a signed URL for the document."""


class StorageError(DocgridError):
    """The row store could not be read or written.

    Unlike every other failure, this one cannot be recorded on the row,
    so the orchestrator lets it propagate.
    """


_STATUS_PATTERN = re.compile(r"\b(\d{3})\b")


def status_from_error(error: BaseException) -> int | None:
    """Return the HTTP status carried by an error.

    Uses ProviderError.status when set, then any `status_code` attribute
    (litellm and httpx errors), then the first three-digit number in the
    message ("ChatPDF API error: 503 ...").
    """
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    match = _STATUS_PATTERN.search(str(error))
    if match:
        return int(match.group(1))
    return None


class ErrorSeverity(Enum):
    """Severity levels for extraction errors."""
    WARNING = "warning"   # Row still extracted
    ERROR = "error"       # Row marked failed
    CRITICAL = "critical" # Row state could not be updated


class ErrorCategory(Enum):
    """Categories of extraction errors."""
    PROVIDER = "provider"         # Provider API errors
    TIMEOUT = "timeout"           # Provider processing timeout
    PARSE = "parse"               # Sanitizer could not recover JSON
    SCHEMA = "schema"             # Empty or invalid column schema
    QUOTA = "quota"               # Plan limits
    DOCUMENT = "document"         # Missing PDF or signed URL failure
    STORAGE = "storage"           # Row store failures
    CONFIG = "config"             # Missing API keys
    UNKNOWN = "unknown"           # Unclassified errors


@dataclass
class ExtractionFailure:
    """Structured record of one failed extraction."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    row_id: str | None = None
    table_id: str | None = None
    provider: str | None = None
    status: int | None = None
    retry_count: int = 0
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.category.value}: {self.message}"]
        if self.row_id:
            parts.append(f"row={self.row_id}")
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.retry_count > 0:
            parts.append(f"retries={self.retry_count}")
        return " | ".join(parts)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "row_id": self.row_id,
            "table_id": self.table_id,
            "provider": self.provider,
            "status": self.status,
            "retry_count": self.retry_count,
            "context": self.context,
        }


def classify_exception(error: BaseException) -> tuple[ErrorCategory, ErrorSeverity]:
    """Map an exception to the category and severity used in logs."""
    if isinstance(error, StorageError):
        return ErrorCategory.STORAGE, ErrorSeverity.CRITICAL
    if isinstance(error, ProviderTimeout):
        return ErrorCategory.TIMEOUT, ErrorSeverity.ERROR
    if isinstance(error, ProviderError):
        return ErrorCategory.PROVIDER, ErrorSeverity.ERROR
    if isinstance(error, (EmptySchema, DuplicateColumnKey)):
        return ErrorCategory.SCHEMA, ErrorSeverity.ERROR
    if isinstance(error, QuotaExceeded):
        return ErrorCategory.QUOTA, ErrorSeverity.ERROR
    if isinstance(error, (DocumentMissing, SignedUrlError)):
        return ErrorCategory.DOCUMENT, ErrorSeverity.ERROR
    if isinstance(error, ConfigError):
        return ErrorCategory.CONFIG, ErrorSeverity.ERROR
    return ErrorCategory.UNKNOWN, ErrorSeverity.ERROR


def failure_from_exception(
    error: BaseException,
    row_id: str | None = None,
    table_id: str | None = None,
    provider: str | None = None,
    retry_count: int = 0,
) -> ExtractionFailure:
    """Build an ExtractionFailure from a caught exception."""
    category, severity = classify_exception(error)
    return ExtractionFailure(
        category=category,
        severity=severity,
        message=str(error) or type(error).__name__,
        row_id=row_id,
        table_id=table_id,
        provider=provider,
        status=status_from_error(error) if isinstance(error, ProviderError) else None,
        retry_count=retry_count,
    )


def parse_failure(
    error_code: str,
    message: str,
    row_id: str | None = None,
    table_id: str | None = None,
    provider: str | None = None,
    raw_response: str | None = None,
) -> ExtractionFailure:
    """Create a failure record for a response the sanitizer rejected."""
    return ExtractionFailure(
        category=ErrorCategory.PARSE,
        severity=ErrorSeverity.ERROR,
        message=message,
        row_id=row_id,
        table_id=table_id,
        provider=provider,
        context={
            "error_code": error_code,
            "raw_response": raw_response[:500] if raw_response else None,
        },
    )
