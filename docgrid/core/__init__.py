"""Core utilities for the extraction pipeline.

Lifecycle, quota and entitlements are imported from their modules directly
(`docgrid.core.lifecycle`, ...) because they depend on the pydantic models,
which themselves import `docgrid.core.errors`.
"""

from docgrid.core.config import (
    API_KEY_ENV_VARS,
    DEFAULT_PROVIDER,
    SUPPORTED_PROVIDERS,
    LifecycleConfig,
    PlanLimits,
    ProviderConfig,
    RetryConfig,
    get_api_key,
)
from docgrid.core.errors import (
    ConfigError,
    DocgridError,
    DocumentMissing,
    DuplicateColumnKey,
    EmptySchema,
    ErrorCategory,
    ErrorSeverity,
    ExtractionFailure,
    ProviderError,
    ProviderTimeout,
    QuotaExceeded,
    RowNotFound,
    SignedUrlError,
    StorageError,
    TableNotFound,
    classify_exception,
    failure_from_exception,
    parse_failure,
    status_from_error,
)
from docgrid.core.normalizer import has_all_schema_keys, normalize_to_schema
from docgrid.core.pipeline_logger import PipelineLogger
from docgrid.core.retry import RetryPolicy
from docgrid.core.sanitizer import (
    SanitizeResult,
    sanitize_json_response,
    strip_code_fences,
    truncate_for_storage,
)
from docgrid.core.usage_tracker import ProviderUsage, UsageTracker

__all__ = [
    # Configuration
    "API_KEY_ENV_VARS",
    "DEFAULT_PROVIDER",
    "SUPPORTED_PROVIDERS",
    "LifecycleConfig",
    "PlanLimits",
    "ProviderConfig",
    "RetryConfig",
    "get_api_key",
    # Errors
    "ConfigError",
    "DocgridError",
    "DocumentMissing",
    "DuplicateColumnKey",
    "EmptySchema",
    "ErrorCategory",
    "ErrorSeverity",
    "ExtractionFailure",
    "ProviderError",
    "ProviderTimeout",
    "QuotaExceeded",
    "RowNotFound",
    "SignedUrlError",
    "StorageError",
    "TableNotFound",
    "classify_exception",
    "failure_from_exception",
    "parse_failure",
    "status_from_error",
    # Response handling
    "SanitizeResult",
    "sanitize_json_response",
    "strip_code_fences",
    "truncate_for_storage",
    "normalize_to_schema",
    "has_all_schema_keys",
    # Retry
    "RetryPolicy",
    # Logging and usage
    "PipelineLogger",
    "ProviderUsage",
    "UsageTracker",
]
