"""JSON file conversation store backend.

Keeps threads in a single JSON document laid out like the browser storage
of the web UI, so data can be moved between the two:

    {
      "mylocalai_conversations": [{"id", "created_at", "updated_at"}, ...],
      "mylocalai_messages": [{"id", "conversation_id", "content", "sender",
                              "thinking", "timestamp", "response_time"}, ...]
    }
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from .in_memory import InMemoryConversationStore
from .models import Conversation, ConversationSummary, StoredMessage

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "mylocalai_conversations"
MESSAGES_KEY = "mylocalai_messages"


class JSONFileConversationStore(InMemoryConversationStore):
    """Conversation store persisted to a JSON file.

    The whole document is held in memory and rewritten after every change.
    Suitable for the client side of the app, where a single user writes.
    """

    def __init__(self, path: str | Path = "./storage/conversations.json"):
        super().__init__()
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def connect(self) -> None:
        """Load the document from disk if it exists."""
        if not self._path.exists():
            return
        raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
        if not raw.strip():
            return
        data = json.loads(raw)
        self._load_document(data.get(CONVERSATIONS_KEY, []), data.get(MESSAGES_KEY, []))

    async def disconnect(self) -> None:
        await self._save()

    def _load_document(self, conversations: list[dict[str, Any]], messages: list[dict[str, Any]]) -> None:
        self._conversations.clear()
        self._touched.clear()

        for entry in conversations:
            conversation = Conversation(
                thread_id=entry["id"],
                created_at=datetime.fromisoformat(entry["created_at"]),
                updated_at=datetime.fromisoformat(entry.get("updated_at") or entry["created_at"]),
            )
            self._conversations[conversation.thread_id] = conversation

        for entry in sorted(messages, key=lambda m: m.get("timestamp", "")):
            conversation = self._conversations.get(entry.get("conversation_id", ""))
            if conversation is None:
                logger.debug("Skipping orphan message %s", entry.get("id"))
                continue
            conversation.messages.append(StoredMessage(
                id=str(entry["id"]),
                role=entry.get("sender", "user"),
                content=entry.get("content", ""),
                thinking=entry.get("thinking", ""),
                timestamp=datetime.fromisoformat(entry["timestamp"]),
                response_time=entry.get("response_time"),
            ))

        for conversation in sorted(self._conversations.values(), key=lambda c: c.updated_at):
            self._mark(conversation)

    def _dump_document(self) -> dict[str, list[dict[str, Any]]]:
        conversations = []
        messages = []
        for conversation in self._conversations.values():
            conversations.append({
                "id": conversation.thread_id,
                "created_at": conversation.created_at.isoformat(),
                "updated_at": conversation.updated_at.isoformat(),
            })
            for message in conversation.messages:
                messages.append({
                    "id": message.id,
                    "conversation_id": conversation.thread_id,
                    "content": message.content,
                    "sender": message.role,
                    "thinking": message.thinking,
                    "timestamp": message.timestamp.isoformat(),
                    "response_time": message.response_time,
                })
        return {CONVERSATIONS_KEY: conversations, MESSAGES_KEY: messages}

    async def _save(self) -> None:
        async with self._lock:
            document = json.dumps(self._dump_document(), indent=2, ensure_ascii=False)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            await asyncio.to_thread(tmp_path.write_text, document, encoding="utf-8")
            await asyncio.to_thread(tmp_path.replace, self._path)

    async def create_conversation(self, thread_id: str | None = None) -> ConversationSummary:
        summary = await super().create_conversation(thread_id)
        await self._save()
        return summary

    async def append_message(self, thread_id: str, message: StoredMessage) -> StoredMessage:
        stored = await super().append_message(thread_id, message)
        await self._save()
        return stored

    async def replace_messages(self, thread_id: str, messages: list[StoredMessage]) -> None:
        await super().replace_messages(thread_id, messages)
        await self._save()

    async def delete_conversation(self, thread_id: str) -> None:
        await super().delete_conversation(thread_id)
        await self._save()

    async def clear_all(self) -> int:
        count = await super().clear_all()
        await self._save()
        return count

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        """Export every thread as ``{"conversations": [...], "messages": [...]}``."""
        document = self._dump_document()
        return {
            "conversations": document[CONVERSATIONS_KEY],
            "messages": document[MESSAGES_KEY],
        }

    async def import_data(self, data: dict[str, Any]) -> None:
        """Replace stored data with an export produced by export_data().

        Either key may be omitted, in which case that part is kept.
        """
        current = self.export_data()
        self._load_document(
            data.get("conversations", current["conversations"]),
            data.get("messages", current["messages"]),
        )
        await self._save()

    @property
    def backend_type(self) -> str:
        return "json"
