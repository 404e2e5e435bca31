"""Data models for the conversation store.

These models define the structure of persisted threads and messages,
independent of the storage backend used.
"""

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

PREVIEW_LENGTH = 50
EMPTY_PREVIEW = "New conversation"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoredMessage(BaseModel):
    """One persisted conversation turn."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Literal["user", "assistant"]
    content: str
    thinking: str = Field(default="", description="Extracted reasoning text")
    timestamp: datetime = Field(default_factory=utc_now)
    response_time: float | None = Field(
        default=None,
        description="Seconds from send to completion (assistant messages only)"
    )


class ConversationSummary(BaseModel):
    """Listing entry for one thread."""

    thread_id: str
    created_at: datetime
    updated_at: datetime
    preview: str = EMPTY_PREVIEW
    message_count: int = 0


def preview_text(content: str | None) -> str:
    """Shorten one message text into a listing preview."""
    text = (content or "").strip()
    if not text:
        return EMPTY_PREVIEW
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


def make_preview(messages: list[StoredMessage]) -> str:
    """Preview text for a thread: its first user message, shortened."""
    for message in messages:
        if message.role == "user" and message.content.strip():
            return preview_text(message.content)
    return EMPTY_PREVIEW


class Conversation(BaseModel):
    """A thread and its ordered messages."""

    thread_id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    messages: list[StoredMessage] = Field(default_factory=list)

    def touch(self) -> None:
        self.updated_at = max(utc_now(), self.updated_at)

    def summary(self) -> ConversationSummary:
        return ConversationSummary(
            thread_id=self.thread_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            preview=make_preview(self.messages),
            message_count=len(self.messages),
        )
