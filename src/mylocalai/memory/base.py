"""Abstract base class for conversation store backends.

This module defines the interface for conversation persistence.
The abstraction hides:
- Storage format (JSON, SQLite, etc.)
- Persistence mechanism (file, database, in-memory)
- Connection management

The streaming pipeline never talks to a backend directly; the server relay
and the client session are the only writers, one writer per thread at a time.
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import ConversationSummary, StoredMessage


class ConversationNotFoundError(KeyError):
    """Raised when a thread id is unknown to the store."""

    def __init__(self, thread_id: str):
        super().__init__(thread_id)
        self.thread_id = thread_id

    def __str__(self) -> str:
        return f"Conversation not found: {self.thread_id}"


class ConversationStore(ABC):
    """Abstract conversation store.

    Provides a unified interface for storing and retrieving threads
    across different storage backends.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def create_conversation(self, thread_id: str | None = None) -> ConversationSummary:
        """Create a thread (a fresh uuid when no id is given).

        Creating a thread that already exists returns its summary unchanged.
        """

    @abstractmethod
    async def exists(self, thread_id: str) -> bool:
        """Check whether a thread exists."""

    @abstractmethod
    async def list_conversations(self, limit: int | None = None) -> list[ConversationSummary]:
        """List threads, most recently updated first."""

    @abstractmethod
    async def get_messages(self, thread_id: str) -> list[StoredMessage]:
        """Get a thread's messages in order.

        Raises:
            ConversationNotFoundError: If the thread does not exist
        """

    @abstractmethod
    async def append_message(self, thread_id: str, message: StoredMessage) -> StoredMessage:
        """Append a message, creating the thread if needed."""

    @abstractmethod
    async def replace_messages(self, thread_id: str, messages: list[StoredMessage]) -> None:
        """Replace a thread's messages with a snapshot, creating the thread if needed."""

    @abstractmethod
    async def delete_conversation(self, thread_id: str) -> None:
        """Delete a thread and its messages.

        Raises:
            ConversationNotFoundError: If the thread does not exist
        """

    @abstractmethod
    async def clear_all(self) -> int:
        """Delete every thread; returns how many were removed."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "ConversationStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
