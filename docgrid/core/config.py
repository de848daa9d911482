"""Centralized configuration for the extraction pipeline.

All magic numbers, thresholds, and configuration constants are documented here.
Each constant includes:
- What it controls
- What changing it affects
"""

import os
from datetime import timedelta
from typing import Final

from docgrid.core.errors import ConfigError


# =============================================================================
# Provider Selection
# =============================================================================
#
# The provider is picked per request. When the request does not name one,
# the DOCGRID_PROVIDER environment variable decides:
#   - "chatpdf" (default): ChatPDF source + message API
#   - "gemini": Google Gemini file upload + generateContent
#   - "openrouter": OpenRouter chat completion with a PDF file part
#
# =============================================================================

SUPPORTED_PROVIDERS: Final[tuple[str, ...]] = ("chatpdf", "gemini", "openrouter")

DEFAULT_PROVIDER: Final[str] = os.environ.get("DOCGRID_PROVIDER", "chatpdf")
"""Provider used when a request does not name one (or names an unknown one)."""

API_KEY_ENV_VARS: Final[dict[str, str]] = {
    "chatpdf": "CHATPDF_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}
"""Environment variable holding the API key of each provider."""


def get_api_key(provider: str) -> str:
    """Read the API key for a provider from the environment.

    Raises:
        ConfigError: If the variable is unset or empty.
    """
    name = API_KEY_ENV_VARS.get(provider)
    if name is None:
        raise ConfigError(f"Unknown provider: {provider}")
    value = os.environ.get(name)
    if not value:
        raise ConfigError(f"Missing env: {name}")
    return value


# Provider Call Configuration

class ProviderConfig:
    """Endpoints, models and transport bounds for the provider adapters."""

    HTTP_TIMEOUT_SECONDS: Final[float] = 120.0
    """Transport timeout for every provider HTTP call.

    Extraction of a long PDF can take tens of seconds; this bounds a hung
    connection without cutting off a slow but healthy one.
    """

    CHATPDF_BASE_URL: Final[str] = "https://api.chatpdf.com/v1"

    GEMINI_MODEL: Final[str] = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

    GEMINI_POLL_INTERVAL_SECONDS: Final[float] = 2.5
    """Wait between file-state polls while Gemini is processing an upload."""

    GEMINI_MAX_POLLS: Final[int] = 24
    """Poll ceiling. 24 x 2.5s = 60s before the upload is reported as timed out."""

    OPENROUTER_MODEL: Final[str] = os.environ.get(
        "OPENROUTER_MODEL", "openrouter/google/gemini-2.5-flash"
    )
    """Primary model for the OpenRouter chat completion."""

    OPENROUTER_FALLBACK_MODEL: Final[str] = os.environ.get(
        "OPENROUTER_FALLBACK_MODEL", "openrouter/openai/gpt-4o-mini"
    )
    """Secondary model OpenRouter switches to when the primary fails."""

    OPENROUTER_PDF_ENGINE: Final[str] = "pdf-text"
    """OpenRouter file-parser engine. "pdf-text" is free; "mistral-ocr" handles scans."""


# Retry Configuration

class RetryConfig:
    """Configuration for provider call retries.

    Backoff doubles per attempt: 0.8s before the first retry, 1.6s before
    the second. One retry absorbs most rate-limit blips without making a
    user wait through a long outage.
    """

    MAX_RETRIES: Final[int] = 1
    """Extra attempts after the first call."""

    BASE_DELAY_SECONDS: Final[float] = 0.8
    """Delay before the first retry; multiplied by 2**attempt afterwards."""

    RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})
    """HTTP statuses treated as transient. Any other status fails immediately."""


# Row Lifecycle Configuration

class LifecycleConfig:
    """Constants for the row state machine."""

    STALE_EXTRACTING_AFTER: Final[timedelta] = timedelta(minutes=15)
    """A row left in `extracting` longer than this may be reclaimed.

    Covers invocations that crashed after claiming a row. Shorter values risk
    reclaiming a row whose provider call is merely slow.
    """

    RAW_RESPONSE_MAX_CHARS: Final[int] = 20_000
    """Raw provider output is cut to this length before it is stored."""

    TRUNCATION_MARKER: Final[str] = "... [truncated]"

    SIGNED_URL_TTL_SECONDS: Final[int] = 3600
    """Validity of the signed document URL handed to providers."""

    DEFAULT_FAILURE_MESSAGE: Final[str] = "Upload/extraction failed"
    """Stored when a client reports a failure without a message."""

    EMPTY_SCHEMA_MESSAGE: Final[str] = "Table schema has no columns"


# Plan Limits

class PlanLimits:
    """Document allowances per plan tier."""

    STARTER_MONTHLY_DOCS: Final[int] = 200
    """Documents a starter subscription may extract per calendar month (UTC)."""

    TRIAL_DOCS: Final[int] = int(os.environ.get("DOCGRID_TRIAL_DOCS", "25"))
    """Documents a no-card pro trial may extract in total."""

    TRIAL_LENGTH: Final[timedelta] = timedelta(days=7)
    """Length of the no-card pro trial."""
