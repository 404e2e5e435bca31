"""Request bodies accepted by the HTTP server."""

from typing import Literal

from pydantic import BaseModel, Field


class RequestMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(min_length=1, description="Content cannot be empty")


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``.

    Omitting ``thread_id`` starts a new thread; the server mints its id and
    reports it in the ``start`` event.
    """

    model: str = Field(min_length=1, description="Model is required")
    messages: list[RequestMessage] = Field(min_length=1, description="Messages array must not be empty")
    thread_id: str | None = Field(default=None, min_length=1)

    def system_prompt(self) -> str | None:
        """Instruction block assembled from the system messages, if any."""
        parts = [m.content for m in self.messages if m.role == "system"]
        return "\n\n".join(parts) if parts else None
