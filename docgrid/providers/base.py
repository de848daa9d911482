"""Shared contract for extraction providers.

Every provider turns (document URL, prompt) into the model's raw text reply.
How it gets there differs: ChatPDF registers the URL as a source, Gemini
wants the bytes uploaded, OpenRouter takes the URL as a file part of a chat
message. The orchestrator only sees this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from docgrid.core.errors import ProviderError


@dataclass
class ProviderReply:
    """Raw model output plus whatever usage the provider reported."""

    text: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)


class ProviderAdapter(ABC):
    """One third-party extraction service.

    Implementations raise ProviderError on any non-success outcome, keeping
    the HTTP status when there was one so the retry policy can classify it.
    """

    name: str = ""

    @abstractmethod
    async def extract(self, document_url: str, prompt: str, display_name: str) -> ProviderReply:
        """Run the prompt against the document and return the reply text."""


def raise_for_status(response: httpx.Response, service: str) -> None:
    """Turn a non-2xx response into a ProviderError carrying its status."""
    if response.is_success:
        return
    body = response.text[:500] if response.content else ""
    raise ProviderError(
        f"{service} API error: {response.status_code} {body}".rstrip(),
        status=response.status_code,
    )


def transport_error(service: str, error: httpx.TransportError) -> ProviderError:
    """ProviderError for a request that never got a response."""
    return ProviderError(
        f"{service} request failed: {type(error).__name__}: {error}",
        transport=True,
    )


def json_body(response: httpx.Response, service: str) -> dict[str, Any]:
    """Decode a JSON object body, failing as a ProviderError on garbage."""
    try:
        body = response.json()
    except ValueError as e:
        raise ProviderError(f"{service} returned invalid JSON: {e}", status=response.status_code) from e
    if not isinstance(body, dict):
        raise ProviderError(f"{service} returned an unexpected body", status=response.status_code)
    return body
