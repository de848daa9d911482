"""JSON recovery from free-form provider replies.

Providers are told to answer with one raw JSON object, but replies still
arrive wrapped in code fences or surrounded by chatter ("Sure! Here is...").
This module pulls out the first balanced top-level object and parses it.
No key filtering happens here; see normalizer.py.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from docgrid.core.config import LifecycleConfig

NO_JSON_FOUND = "NoJsonFound"
UNCLOSED_JSON = "UnclosedJson"
JSON_PARSE_ERROR = "JsonParseError"
NOT_A_PLAIN_OBJECT = "NotAPlainObject"

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class SanitizeResult:
    """Outcome of sanitize_json_response().

    Attributes:
        success: True when `data` holds the parsed object.
        data: Parsed JSON object (only on success).
        error_code: One of NO_JSON_FOUND, UNCLOSED_JSON, JSON_PARSE_ERROR,
            NOT_A_PLAIN_OBJECT (only on failure).
        error: Human-readable message stored on the failed row.
    """

    success: bool
    data: dict[str, Any] | None = None
    error_code: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: dict[str, Any]) -> "SanitizeResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error_code: str, error: str) -> "SanitizeResult":
        return cls(success=False, error_code=error_code, error=error)


def strip_code_fences(text: str) -> str:
    """Trim and remove a leading ```json / ``` fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned


def find_json_object(text: str) -> tuple[int, int] | None:
    """Locate the first top-level {...} span by brace depth.

    Braces inside double-quoted strings (including escaped quotes) are not
    counted, so `{"a": "}"}` is one object.

    Returns:
        (start, end) slice bounds, None when no "{" exists.

    Raises:
        ValueError: An opening brace was found but never balanced.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return start, i + 1
    raise ValueError("unbalanced braces")


def sanitize_json_response(response_text: str) -> SanitizeResult:
    """Recover a single JSON object from a provider reply.

    A reply that is valid JSON but not an object is rejected with
    NotAPlainObject only when it contains no "{" at all (`[1, 2]`, `42`).
    Otherwise the first embedded object is recovered, so `[{"a": 1}]`
    yields `{"a": 1}`.

    Examples:
        >>> sanitize_json_response('```json\\n{"a": 1}\\n```').data
        {'a': 1}
        >>> sanitize_json_response("no json here").error_code
        'NoJsonFound'
    """
    cleaned = strip_code_fences(response_text or "")

    try:
        whole = json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    else:
        if isinstance(whole, dict):
            return SanitizeResult.ok(whole)
        if "{" not in cleaned:
            return SanitizeResult.fail(NOT_A_PLAIN_OBJECT, "Parsed value is not a plain object")

    try:
        span = find_json_object(cleaned)
    except ValueError:
        return SanitizeResult.fail(UNCLOSED_JSON, "Unclosed JSON object in response")
    if span is None:
        return SanitizeResult.fail(NO_JSON_FOUND, "No JSON object found in response")

    candidate = cleaned[span[0]:span[1]]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        return SanitizeResult.fail(JSON_PARSE_ERROR, f"JSON parse error: {e}")

    if not isinstance(parsed, dict):
        return SanitizeResult.fail(NOT_A_PLAIN_OBJECT, "Parsed value is not a plain object")

    return SanitizeResult.ok(parsed)


def truncate_for_storage(
    text: str,
    max_length: int = LifecycleConfig.RAW_RESPONSE_MAX_CHARS,
) -> str:
    """Cut text to max_length characters, marking the cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + LifecycleConfig.TRUNCATION_MARKER
