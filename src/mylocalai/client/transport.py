"""HTTP transport for the streaming chat endpoint.

Opens one streaming request per user message and hands the response body to
the frame parser. Network failures never escape: they become a single
synthetic ``ErrorEvent`` so the reducer sees one uniform failure path.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ..server.schemas import ChatRequest
from ..streaming import ErrorEvent, StreamEvent, iter_events

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


def _http_error_message(status_code: int, body: bytes) -> str:
    message = f"HTTP error! status: {status_code}"
    try:
        data: Any = json.loads(body)
    except ValueError:
        return message
    if isinstance(data, dict) and data.get("error"):
        return f"{message}, {data['error']}"
    return message


class ChatTransport:
    """Streams chat events from the server.

    No timeout is applied to the stream body; the underlying connection's own
    limits apply. One instance may serve many sends, one at a time.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        connect_timeout: float = 10.0
    ):
        """Initialize the transport.

        Args:
            base_url: Server base URL (e.g. http://127.0.0.1:8000)
            client: Optional HTTP client (tests inject a mock transport)
            connect_timeout: Seconds allowed to establish the connection
        """
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout)
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def stream_events(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Send a chat request and yield the events of its response.

        Closing the returned iterator early releases the connection; bytes
        arriving afterwards are discarded.

        Yields:
            Parsed stream events in arrival order; on failure a single
            ErrorEvent describing it
        """
        url = f"{self._base_url}{CHAT_PATH}"
        payload = request.model_dump(exclude_none=True)
        logger.debug("POST %s (%d messages)", url, len(request.messages))

        try:
            async with self._client.stream("POST", url, json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    logger.warning("Chat request failed with status %d", response.status_code)
                    yield ErrorEvent(error=_http_error_message(response.status_code, body))
                    return

                async for event in iter_events(response.aiter_bytes()):
                    yield event
        except httpx.HTTPError as e:
            logger.warning("Chat transport failed: %s", e)
            yield ErrorEvent(error=f"{e.__class__.__name__}: {e}" if str(e) else e.__class__.__name__)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ChatTransport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
