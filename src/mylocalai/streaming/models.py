"""UI-side message model and the update records emitted by the reducer.

The reducer never touches UI state directly. It returns update records and
the hosting layer applies them, which keeps the state machine testable
without any UI harness.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class Sender(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A chat message as displayed by the UI.

    Attributes:
        id: Opaque identifier; provisional while the reply is streaming
        text: Visible content with thinking sections removed
        thinking: Extracted reasoning text (may be empty)
        sender: Who wrote the message
        timestamp: Creation time, advisory only
        response_time: Seconds from send to completion, set once
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    thinking: str = ""
    sender: Sender
    timestamp: datetime = Field(default_factory=datetime.now)
    response_time: float | None = None


class StatusUpdate(BaseModel):
    """Transient status banner content."""

    model_config = ConfigDict(frozen=True)

    icon: str
    message: str
    is_loading: bool = False


class StatusChanged(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: StatusUpdate


class StreamOpened(BaseModel):
    model_config = ConfigDict(frozen=True)

    thread_id: str
    is_new_thread: bool


class MessageUpserted(BaseModel):
    """Insert the provisional message, or replace it in place."""

    model_config = ConfigDict(frozen=True)

    message: Message


class MessageFinalized(BaseModel):
    """Swap the provisional message for its final form."""

    model_config = ConfigDict(frozen=True)

    provisional_id: str
    message: Message


class MessageDiscarded(BaseModel):
    """Drop the provisional message without promoting it."""

    model_config = ConfigDict(frozen=True)

    provisional_id: str


class MessageAppended(BaseModel):
    """Append a standalone message (used for error notices)."""

    model_config = ConfigDict(frozen=True)

    message: Message


class StreamCompleted(BaseModel):
    """The reply is final and may be persisted.

    ``refresh_threads`` tells thread-listing views to reload.
    """

    model_config = ConfigDict(frozen=True)

    thread_id: str | None
    message: Message
    is_new_thread: bool = False
    refresh_threads: bool = False


class StreamFailed(BaseModel):
    model_config = ConfigDict(frozen=True)

    error: str


Update = Union[
    StatusChanged,
    StreamOpened,
    MessageUpserted,
    MessageFinalized,
    MessageDiscarded,
    MessageAppended,
    StreamCompleted,
    StreamFailed,
]
