"""Tests for the provider adapters.

HTTP is faked with httpx.MockTransport, the Gemini SDK client with
AsyncMocks, and litellm.acompletion with patch().
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import litellm
import pytest
from google.genai import types

from docgrid.core.errors import ConfigError, ProviderError, ProviderTimeout
from docgrid.providers import (
    ChatPDFProvider,
    GeminiProvider,
    OpenRouterProvider,
    get_provider,
    normalize_provider_name,
)

PDF_URL = "https://files.example.com/documents/u1/invoice.pdf?expires=1&signature=abc"


# =============================================================================
# ChatPDF
# =============================================================================


def chatpdf_transport(add_url=None, message=None, seen=None):
    """MockTransport answering the two ChatPDF endpoints."""
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path.endswith("/sources/add-url"):
            return add_url or httpx.Response(200, json={"sourceId": "src_123"})
        if request.url.path.endswith("/chats/message"):
            return message or httpx.Response(200, json={"content": '{"total": "42.50"}'})
        return httpx.Response(404)
    return httpx.MockTransport(handler)


class TestChatPDFProvider:
    @pytest.mark.asyncio
    async def test_source_then_message(self):
        seen: list[httpx.Request] = []
        provider = ChatPDFProvider(api_key="k", transport=chatpdf_transport(seen=seen))

        reply = await provider.extract(PDF_URL, "PROMPT", "table-t1-row-r1")

        assert reply.text == '{"total": "42.50"}'
        assert [r.url.path for r in seen] == ["/v1/sources/add-url", "/v1/chats/message"]
        assert json.loads(seen[0].content) == {"url": PDF_URL}
        assert json.loads(seen[1].content) == {
            "sourceId": "src_123",
            "messages": [{"role": "user", "content": "PROMPT"}],
        }
        assert all(r.headers["x-api-key"] == "k" for r in seen)

    @pytest.mark.asyncio
    async def test_error_status_surfaced(self):
        transport = chatpdf_transport(add_url=httpx.Response(503, text="overloaded"))
        provider = ChatPDFProvider(api_key="k", transport=transport)

        with pytest.raises(ProviderError) as exc_info:
            await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.status == 503
        assert not exc_info.value.transport
        assert str(exc_info.value) == "ChatPDF API error: 503 overloaded"

    @pytest.mark.asyncio
    async def test_missing_source_id(self):
        transport = chatpdf_transport(add_url=httpx.Response(200, json={}))
        with pytest.raises(ProviderError, match="sourceId"):
            await ChatPDFProvider(api_key="k", transport=transport).extract(PDF_URL, "p", "d")

    @pytest.mark.asyncio
    async def test_empty_content(self):
        transport = chatpdf_transport(message=httpx.Response(200, json={"content": ""}))
        with pytest.raises(ProviderError, match="empty response"):
            await ChatPDFProvider(api_key="k", transport=transport).extract(PDF_URL, "p", "d")

    @pytest.mark.asyncio
    async def test_transport_failure_flagged(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = ChatPDFProvider(api_key="k", transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderError) as exc_info:
            await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.transport
        assert exc_info.value.status is None

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("CHATPDF_API_KEY", raising=False)
        with pytest.raises(ConfigError, match="Missing env: CHATPDF_API_KEY"):
            ChatPDFProvider()


# =============================================================================
# Gemini
# =============================================================================


def gemini_file(state: types.FileState, uri: str | None = "https://gen.example/files/abc"):
    return SimpleNamespace(name="files/abc", state=state, uri=uri, mime_type="application/pdf")


def pdf_transport(status: int = 200):
    return httpx.MockTransport(lambda request: httpx.Response(status, content=b"%PDF-1.4"))


@pytest.fixture
def genai_client():
    """MagicMock shaped like google.genai.Client's async surface."""
    client = MagicMock()
    client.aio.files.upload = AsyncMock(return_value=SimpleNamespace(name="files/abc"))
    client.aio.files.get = AsyncMock(return_value=gemini_file(types.FileState.ACTIVE))
    client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(
        text='{"total": "42.50"}',
        candidates=None,
        usage_metadata=SimpleNamespace(
            prompt_token_count=1200,
            candidates_token_count=40,
            cached_content_token_count=None,
            thoughts_token_count=15,
        ),
    ))
    return client


def make_gemini(client, transport=None, **kwargs):
    sleeps: list[float] = []

    async def sleep(seconds):
        sleeps.append(seconds)

    provider = GeminiProvider(
        client=client, transport=transport or pdf_transport(), sleep=sleep, **kwargs
    )
    return provider, sleeps


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_upload_then_generate(self, genai_client):
        provider, sleeps = make_gemini(genai_client)

        reply = await provider.extract(PDF_URL, "PROMPT", "table-t1-row-r1")

        assert reply.text == '{"total": "42.50"}'
        assert reply.usage == {
            "prompt_tokens": 1200,
            "completion_tokens": 40,
            "cached_tokens": 0,
            "thoughts_tokens": 15,
        }
        upload_config = genai_client.aio.files.upload.call_args.kwargs["config"]
        assert upload_config.display_name == "table-t1-row-r1"
        assert upload_config.mime_type == "application/pdf"
        contents = genai_client.aio.models.generate_content.call_args.kwargs["contents"]
        assert contents[0] == "PROMPT"
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_polls_while_processing(self, genai_client):
        genai_client.aio.files.get.side_effect = [
            gemini_file(types.FileState.PROCESSING),
            gemini_file(types.FileState.PROCESSING),
            gemini_file(types.FileState.ACTIVE),
        ]
        provider, sleeps = make_gemini(genai_client)

        await provider.extract(PDF_URL, "p", "d")

        assert sleeps == [2.5, 2.5]

    @pytest.mark.asyncio
    async def test_processing_failed(self, genai_client):
        genai_client.aio.files.get.return_value = gemini_file(types.FileState.FAILED)
        provider, _ = make_gemini(genai_client)

        with pytest.raises(ProviderError, match="processing failed") as exc_info:
            await provider.extract(PDF_URL, "p", "d")
        assert not isinstance(exc_info.value, ProviderTimeout)

    @pytest.mark.asyncio
    async def test_poll_ceiling(self, genai_client):
        genai_client.aio.files.get.return_value = gemini_file(types.FileState.PROCESSING)
        provider, sleeps = make_gemini(genai_client, max_polls=3)

        with pytest.raises(ProviderTimeout, match="timed out"):
            await provider.extract(PDF_URL, "p", "d")

        assert len(sleeps) == 3
        assert genai_client.aio.files.get.await_count == 4
        genai_client.aio.models.generate_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_pdf_download_failure(self, genai_client):
        provider, _ = make_gemini(genai_client, transport=pdf_transport(404))

        with pytest.raises(ProviderError, match="Failed to fetch PDF: 404") as exc_info:
            await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.status == 404
        genai_client.aio.files.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_uri(self, genai_client):
        genai_client.aio.files.get.return_value = gemini_file(types.FileState.ACTIVE, uri=None)
        provider, _ = make_gemini(genai_client)

        with pytest.raises(ProviderError, match="uri/mimeType"):
            await provider.extract(PDF_URL, "p", "d")

    @pytest.mark.asyncio
    async def test_empty_text(self, genai_client):
        genai_client.aio.models.generate_content.return_value = SimpleNamespace(
            text=None, candidates=[], usage_metadata=None,
        )
        provider, _ = make_gemini(genai_client)

        with pytest.raises(ProviderError, match="Gemini returned an empty response."):
            await provider.extract(PDF_URL, "p", "d")

    @pytest.mark.asyncio
    async def test_connection_error_during_generate(self, genai_client):
        genai_client.aio.models.generate_content.side_effect = httpx.ConnectError("connection reset")
        provider, _ = make_gemini(genai_client)

        with pytest.raises(ProviderError, match="Gemini request failed: ConnectError") as exc_info:
            await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.transport

    @pytest.mark.asyncio
    async def test_read_timeout_during_upload(self, genai_client):
        genai_client.aio.files.upload.side_effect = httpx.ReadTimeout("timed out")
        provider, _ = make_gemini(genai_client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.transport
        genai_client.aio.models.generate_content.assert_not_called()

    def test_sdk_client_gets_request_timeout(self):
        with patch("docgrid.providers.gemini.genai.Client") as client_cls:
            GeminiProvider(api_key="k", timeout=5.0)

        kwargs = client_cls.call_args.kwargs
        assert kwargs["api_key"] == "k"
        assert kwargs["http_options"].timeout == 5000


# =============================================================================
# OpenRouter
# =============================================================================


def completion_response(content='{"total": "42.50"}'):
    return MagicMock(
        choices=[MagicMock(message=MagicMock(content=content))],
        model="openrouter/google/gemini-2.5-flash",
        usage=MagicMock(
            prompt_tokens=900,
            completion_tokens=30,
            prompt_tokens_details=MagicMock(cached_tokens=100),
        ),
    )


class TestOpenRouterProvider:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        provider = OpenRouterProvider(
            api_key="k",
            model="openrouter/google/gemini-2.5-flash",
            fallback_model="openrouter/openai/gpt-4o-mini",
        )
        with patch("litellm.acompletion", new=AsyncMock(return_value=completion_response())) as mock:
            reply = await provider.extract(PDF_URL, "PROMPT", "table-t1-row-r1")

        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openrouter/google/gemini-2.5-flash"
        content = kwargs["messages"][0]["content"]
        assert content[0] == {"type": "text", "text": "PROMPT"}
        assert content[1]["type"] == "file"
        assert content[1]["file"]["file_data"] == PDF_URL
        assert kwargs["extra_body"]["models"] == ["google/gemini-2.5-flash", "openai/gpt-4o-mini"]
        assert kwargs["extra_body"]["plugins"] == [
            {"id": "file-parser", "pdf": {"engine": "pdf-text"}}
        ]
        assert reply.text == '{"total": "42.50"}'
        assert reply.usage == {"prompt_tokens": 900, "completion_tokens": 30, "cached_tokens": 100}

    @pytest.mark.asyncio
    async def test_no_fallback_model(self):
        provider = OpenRouterProvider(api_key="k", fallback_model=None)
        kwargs = provider.request_kwargs("p", PDF_URL, "d")
        assert "models" not in kwargs["extra_body"]

    @pytest.mark.asyncio
    async def test_status_error_mapped(self):
        class UpstreamError(Exception):
            status_code = 502

        provider = OpenRouterProvider(api_key="k")
        with patch("litellm.acompletion", new=AsyncMock(side_effect=UpstreamError("bad gateway"))):
            with pytest.raises(ProviderError) as exc_info:
                await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.status == 502
        assert not exc_info.value.transport

    @pytest.mark.asyncio
    async def test_connection_error_is_transport(self):
        error = litellm.APIConnectionError(
            message="connection reset", llm_provider="openrouter", model="m"
        )
        provider = OpenRouterProvider(api_key="k")
        with patch("litellm.acompletion", new=AsyncMock(side_effect=error)):
            with pytest.raises(ProviderError) as exc_info:
                await provider.extract(PDF_URL, "p", "d")

        assert exc_info.value.transport

    @pytest.mark.asyncio
    async def test_empty_content(self):
        provider = OpenRouterProvider(api_key="k")
        with patch("litellm.acompletion", new=AsyncMock(return_value=completion_response(""))):
            with pytest.raises(ProviderError, match="empty response"):
                await provider.extract(PDF_URL, "p", "d")


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    @pytest.mark.parametrize("name,expected", [
        ("gemini", "gemini"),
        ("OpenRouter", "openrouter"),
        (" chatpdf ", "chatpdf"),
    ])
    def test_known_names(self, name, expected):
        assert normalize_provider_name(name) == expected

    @pytest.mark.parametrize("name", [None, "", "claude"])
    def test_unknown_falls_back_to_default(self, name):
        assert normalize_provider_name(name) in ("chatpdf", "gemini", "openrouter")

    def test_get_provider_builds_adapter(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
        provider = get_provider("openrouter")
        assert isinstance(provider, OpenRouterProvider)
        assert provider.api_key == "or-key"

    def test_get_provider_passes_kwargs(self):
        provider = get_provider("chatpdf", api_key="explicit")
        assert isinstance(provider, ChatPDFProvider)
        assert provider.api_key == "explicit"
