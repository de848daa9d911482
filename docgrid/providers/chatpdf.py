"""ChatPDF provider: register the PDF as a source, then ask about it.

Two sequential calls:
    POST /sources/add-url   {"url": ...}                      -> {"sourceId": ...}
    POST /chats/message     {"sourceId": ..., "messages": []}  -> {"content": ...}
"""

import logging

import httpx

from docgrid.core.config import ProviderConfig, get_api_key
from docgrid.core.errors import ProviderError
from docgrid.providers.base import (
    ProviderAdapter,
    ProviderReply,
    json_body,
    raise_for_status,
    transport_error,
)

logger = logging.getLogger(__name__)

SERVICE = "ChatPDF"


class ChatPDFProvider(ProviderAdapter):
    """Variant A: source + message protocol."""

    name = "chatpdf"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = ProviderConfig.CHATPDF_BASE_URL,
        timeout: float = ProviderConfig.HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            api_key: ChatPDF key. Read from CHATPDF_API_KEY when omitted.
            base_url: API root.
            timeout: Transport timeout per request.
            transport: httpx transport override (tests use httpx.MockTransport).
        """
        self.api_key = api_key or get_api_key(self.name)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
        )

    async def add_source(self, client: httpx.AsyncClient, document_url: str) -> str:
        try:
            response = await client.post("/sources/add-url", json={"url": document_url})
        except httpx.TransportError as e:
            raise transport_error(SERVICE, e) from e
        raise_for_status(response, SERVICE)

        source_id = json_body(response, SERVICE).get("sourceId")
        if not source_id:
            raise ProviderError("ChatPDF did not return a sourceId", status=response.status_code)
        return source_id

    async def send_message(self, client: httpx.AsyncClient, source_id: str, prompt: str) -> str:
        payload = {
            "sourceId": source_id,
            "messages": [{"role": "user", "content": prompt}],
        }
        try:
            response = await client.post("/chats/message", json=payload)
        except httpx.TransportError as e:
            raise transport_error(SERVICE, e) from e
        raise_for_status(response, SERVICE)

        content = json_body(response, SERVICE).get("content")
        if not content:
            raise ProviderError("ChatPDF returned an empty response.", status=response.status_code)
        return content

    async def extract(self, document_url: str, prompt: str, display_name: str) -> ProviderReply:
        async with self._client() as client:
            source_id = await self.add_source(client, document_url)
            logger.debug("ChatPDF source %s registered for %s", source_id, display_name)
            content = await self.send_message(client, source_id, prompt)
        return ProviderReply(text=content, model="chatpdf")
