"""OpenRouter provider: one chat completion with the PDF as a file part.

The document travels by reference (the signed URL) and OpenRouter's
file-parser plugin turns it into text. Model fallback happens on the
OpenRouter side: the request lists the primary and fallback models and
OpenRouter moves to the second when the first errors.
"""

import logging
from typing import Any

import litellm

from docgrid.core.config import ProviderConfig, get_api_key
from docgrid.core.errors import ProviderError
from docgrid.providers.base import ProviderAdapter, ProviderReply

logger = logging.getLogger(__name__)


def _routing_id(model: str) -> str:
    """OpenRouter model id without litellm's 'openrouter/' routing prefix."""
    return model.removeprefix("openrouter/")


def build_messages(prompt: str, document_url: str, display_name: str) -> list[dict[str, Any]]:
    """Single user message carrying the prompt and the PDF reference."""
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {
                    "type": "file",
                    "file": {"filename": f"{display_name}.pdf", "file_data": document_url},
                },
            ],
        }
    ]


def _usage_from_response(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return {}
    details = getattr(usage, "prompt_tokens_details", None)
    return {
        "prompt_tokens": getattr(usage, "prompt_tokens", None) or 0,
        "completion_tokens": getattr(usage, "completion_tokens", None) or 0,
        "cached_tokens": getattr(details, "cached_tokens", None) or 0,
    }


class OpenRouterProvider(ProviderAdapter):
    """Variant C: chat completion with a file attachment, via litellm."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = ProviderConfig.OPENROUTER_MODEL,
        fallback_model: str | None = ProviderConfig.OPENROUTER_FALLBACK_MODEL,
        pdf_engine: str = ProviderConfig.OPENROUTER_PDF_ENGINE,
        timeout: float = ProviderConfig.HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key or get_api_key(self.name)
        self.model = model
        self.fallback_model = fallback_model
        self.pdf_engine = pdf_engine
        self.timeout = timeout

    def request_kwargs(self, prompt: str, document_url: str, display_name: str) -> dict[str, Any]:
        extra_body: dict[str, Any] = {
            "plugins": [{"id": "file-parser", "pdf": {"engine": self.pdf_engine}}],
        }
        if self.fallback_model:
            extra_body["models"] = [_routing_id(self.model), _routing_id(self.fallback_model)]
        return {
            "model": self.model,
            "messages": build_messages(prompt, document_url, display_name),
            "api_key": self.api_key,
            "timeout": self.timeout,
            "extra_body": extra_body,
        }

    async def extract(self, document_url: str, prompt: str, display_name: str) -> ProviderReply:
        kwargs = self.request_kwargs(prompt, document_url, display_name)
        try:
            response = await litellm.acompletion(**kwargs)
        except (litellm.Timeout, litellm.APIConnectionError) as e:
            raise ProviderError(f"OpenRouter request failed: {e}", transport=True) from e
        except Exception as e:
            status = getattr(e, "status_code", None)
            raise ProviderError(
                f"OpenRouter API error: {e}",
                status=status if isinstance(status, int) else None,
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError("OpenRouter returned an empty response.")

        model = getattr(response, "model", None) or self.model
        logger.debug("OpenRouter answered with %s", model)
        return ProviderReply(text=content, model=model, usage=_usage_from_response(response))
