"""In-memory conversation store backend.

Simple dict-based storage for session-only memory.
Data is lost when the application exits.
"""

from uuid import uuid4

from .base import ConversationNotFoundError, ConversationStore
from .models import Conversation, ConversationSummary, StoredMessage


class InMemoryConversationStore(ConversationStore):
    """In-memory conversation store (session-only).

    Data is stored in memory and lost when the app exits.
    Suitable for single-session use or testing.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        # Touch order breaks ties between equal updated_at timestamps
        self._touched: dict[str, int] = {}
        self._clock = 0

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    def _mark(self, conversation: Conversation) -> None:
        self._clock += 1
        self._touched[conversation.thread_id] = self._clock

    def _get_or_create(self, thread_id: str) -> Conversation:
        conversation = self._conversations.get(thread_id)
        if conversation is None:
            conversation = Conversation(thread_id=thread_id)
            self._conversations[thread_id] = conversation
            self._mark(conversation)
        return conversation

    def _require(self, thread_id: str) -> Conversation:
        conversation = self._conversations.get(thread_id)
        if conversation is None:
            raise ConversationNotFoundError(thread_id)
        return conversation

    async def create_conversation(self, thread_id: str | None = None) -> ConversationSummary:
        return self._get_or_create(thread_id or str(uuid4())).summary()

    async def exists(self, thread_id: str) -> bool:
        return thread_id in self._conversations

    async def list_conversations(self, limit: int | None = None) -> list[ConversationSummary]:
        ordered = sorted(
            self._conversations.values(),
            key=lambda c: (c.updated_at, self._touched.get(c.thread_id, 0)),
            reverse=True,
        )
        if limit is not None:
            ordered = ordered[:limit]
        return [c.summary() for c in ordered]

    async def get_messages(self, thread_id: str) -> list[StoredMessage]:
        return list(self._require(thread_id).messages)

    async def append_message(self, thread_id: str, message: StoredMessage) -> StoredMessage:
        conversation = self._get_or_create(thread_id)
        conversation.messages.append(message)
        conversation.touch()
        self._mark(conversation)
        return message

    async def replace_messages(self, thread_id: str, messages: list[StoredMessage]) -> None:
        conversation = self._get_or_create(thread_id)
        conversation.messages = list(messages)
        conversation.touch()
        self._mark(conversation)

    async def delete_conversation(self, thread_id: str) -> None:
        self._require(thread_id)
        del self._conversations[thread_id]
        self._touched.pop(thread_id, None)

    async def clear_all(self) -> int:
        count = len(self._conversations)
        self._conversations.clear()
        self._touched.clear()
        return count

    @property
    def backend_type(self) -> str:
        return "memory"
