"""Gemini provider: upload the PDF bytes, wait for processing, then generate.

The Files API needs the document itself rather than a URL, so the adapter
downloads the signed URL first. Uploaded files go through PROCESSING before
they can be referenced; polling is bounded by GEMINI_MAX_POLLS.
"""

import asyncio
import io
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from docgrid.core.config import ProviderConfig, get_api_key
from docgrid.core.errors import ProviderError, ProviderTimeout
from docgrid.providers.base import ProviderAdapter, ProviderReply, transport_error

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def _state_name(file: Any) -> str:
    state = getattr(file, "state", None)
    return getattr(state, "name", None) or str(state or "")


def _usage_from_response(response: Any) -> dict[str, int]:
    meta = getattr(response, "usage_metadata", None)
    if meta is None:
        return {}
    return {
        "prompt_tokens": getattr(meta, "prompt_token_count", None) or 0,
        "completion_tokens": getattr(meta, "candidates_token_count", None) or 0,
        "cached_tokens": getattr(meta, "cached_content_token_count", None) or 0,
        "thoughts_tokens": getattr(meta, "thoughts_token_count", None) or 0,
    }


def _response_text(response: Any) -> str:
    """Text of the first candidate, joined across parts."""
    text = getattr(response, "text", None)
    if text:
        return text
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return ""
    parts = candidates[0].content.parts or []
    return "".join(p.text for p in parts if getattr(p, "text", None))


class GeminiProvider(ProviderAdapter):
    """Variant B: upload, poll until ACTIVE, generate against the file URI."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = ProviderConfig.GEMINI_MODEL,
        client: genai.Client | None = None,
        poll_interval: float = ProviderConfig.GEMINI_POLL_INTERVAL_SECONDS,
        max_polls: int = ProviderConfig.GEMINI_MAX_POLLS,
        timeout: float = ProviderConfig.HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if client is None:
            client = genai.Client(
                api_key=api_key or get_api_key(self.name),
                # HttpOptions.timeout is in milliseconds
                http_options=types.HttpOptions(timeout=int(timeout * 1000)),
            )
        self.client = client
        self.model = model
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    async def fetch_document(self, document_url: str) -> bytes:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as http:
            try:
                response = await http.get(document_url)
            except httpx.TransportError as e:
                raise transport_error("PDF download", e) from e
        if not response.is_success:
            raise ProviderError(
                f"Failed to fetch PDF: {response.status_code} {response.reason_phrase}".rstrip(),
                status=response.status_code,
            )
        return response.content

    async def upload(self, data: bytes, display_name: str) -> Any:
        """Upload the PDF and block until Gemini finishes processing it.

        Raises:
            ProviderError: Processing ended in FAILED.
            ProviderTimeout: Still PROCESSING after max_polls polls.
        """
        uploaded = await self.client.aio.files.upload(
            file=io.BytesIO(data),
            config=types.UploadFileConfig(mime_type=PDF_MIME_TYPE, display_name=display_name),
        )
        file = await self.client.aio.files.get(name=uploaded.name)

        polls = 0
        while _state_name(file) == "PROCESSING" and polls < self.max_polls:
            polls += 1
            await self._sleep(self.poll_interval)
            file = await self.client.aio.files.get(name=uploaded.name)

        state = _state_name(file)
        if state == "FAILED":
            raise ProviderError("Gemini file processing failed.")
        if state == "PROCESSING":
            raise ProviderTimeout("Gemini file processing timed out.")
        logger.debug("Gemini file %s ready after %d polls", file.name, polls)
        return file

    async def extract(self, document_url: str, prompt: str, display_name: str) -> ProviderReply:
        data = await self.fetch_document(document_url)

        try:
            file = await self.upload(data, display_name)
            if not file.uri or not file.mime_type:
                raise ProviderError("Gemini file upload did not return uri/mimeType.")

            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[prompt, types.Part.from_uri(file_uri=file.uri, mime_type=file.mime_type)],
            )
        except genai_errors.APIError as e:
            raise ProviderError(f"Gemini API error: {e.code} {e.message}", status=e.code) from e
        except httpx.TransportError as e:
            raise transport_error("Gemini", e) from e

        text = _response_text(response)
        if not text:
            raise ProviderError("Gemini returned an empty response.")
        return ProviderReply(text=text, model=self.model, usage=_usage_from_response(response))
