"""Extraction providers and the registry that picks one by name."""

from typing import Any

from docgrid.core.config import DEFAULT_PROVIDER, SUPPORTED_PROVIDERS
from docgrid.providers.base import ProviderAdapter, ProviderReply
from docgrid.providers.chatpdf import ChatPDFProvider
from docgrid.providers.gemini import GeminiProvider
from docgrid.providers.openrouter import OpenRouterProvider

PROVIDERS: dict[str, type[ProviderAdapter]] = {
    ChatPDFProvider.name: ChatPDFProvider,
    GeminiProvider.name: GeminiProvider,
    OpenRouterProvider.name: OpenRouterProvider,
}


def normalize_provider_name(name: str | None) -> str:
    """Map a requested provider to a supported one.

    Unknown or missing names fall back to the default provider, matching how
    requests from older clients that never sent a provider are handled.
    """
    if name:
        candidate = name.strip().lower()
        if candidate in SUPPORTED_PROVIDERS:
            return candidate
    return DEFAULT_PROVIDER if DEFAULT_PROVIDER in SUPPORTED_PROVIDERS else "chatpdf"


def get_provider(name: str | None = None, **kwargs: Any) -> ProviderAdapter:
    """Instantiate the adapter for a provider name.

    Raises:
        ConfigError: If the provider's API key is not configured.
    """
    return PROVIDERS[normalize_provider_name(name)](**kwargs)


__all__ = [
    "PROVIDERS",
    "ChatPDFProvider",
    "GeminiProvider",
    "OpenRouterProvider",
    "ProviderAdapter",
    "ProviderReply",
    "get_provider",
    "normalize_provider_name",
]
