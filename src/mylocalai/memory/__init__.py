"""Conversation store module for mylocalai.

Persists threads for the server (checkpoint store) and the client
(local history).
"""

from .base import ConversationNotFoundError, ConversationStore
from .factory import create_conversation_store
from .models import Conversation, ConversationSummary, StoredMessage, make_preview

__all__ = [
    "Conversation",
    "ConversationNotFoundError",
    "ConversationStore",
    "ConversationSummary",
    "StoredMessage",
    "create_conversation_store",
    "make_preview",
]
