"""Client for the non-streaming conversation endpoints."""

from typing import Any

import httpx
from pydantic import BaseModel

from ..llm import ModelStatus
from ..memory import ConversationNotFoundError, ConversationSummary, StoredMessage


class ConversationDetail(BaseModel):
    thread_id: str
    messages: list[StoredMessage]
    total_messages: int


class ConversationsClient:
    """Lists, fetches and deletes server-side threads."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def list_conversations(self, limit: int | None = None) -> list[ConversationSummary]:
        params = {"limit": limit} if limit is not None else None
        response = await self._client.get(self._url("/api/conversations"), params=params)
        response.raise_for_status()
        return [ConversationSummary.model_validate(c) for c in response.json()["conversations"]]

    async def get_conversation(self, thread_id: str) -> ConversationDetail:
        """Fetch one thread.

        Raises:
            ConversationNotFoundError: If the server does not know the thread
        """
        response = await self._client.get(self._url(f"/api/conversations/{thread_id}"))
        if response.status_code == 404:
            raise ConversationNotFoundError(thread_id)
        response.raise_for_status()
        return ConversationDetail.model_validate(response.json())

    async def delete_conversation(self, thread_id: str) -> None:
        response = await self._client.delete(self._url(f"/api/conversations/{thread_id}"))
        if response.status_code == 404:
            raise ConversationNotFoundError(thread_id)
        response.raise_for_status()

    async def clear_conversations(self) -> int:
        response = await self._client.delete(self._url("/api/conversations"))
        response.raise_for_status()
        return int(response.json().get("deleted", 0))

    async def health(self) -> ModelStatus:
        """Model server status as reported by the server (200 or 503)."""
        response = await self._client.get(self._url("/api/health"))
        if response.status_code not in (200, 503):
            response.raise_for_status()
        return ModelStatus.model_validate(response.json())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ConversationsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
