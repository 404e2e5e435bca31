"""Client side of the chat app: transport, conversation API and session state."""

from .api import ConversationDetail, ConversationsClient
from .session import (
    ChatSession,
    MessagesReset,
    SendInProgressError,
    SessionUpdate,
    StatusCleared,
    stored_to_message,
)
from .transport import ChatTransport

__all__ = [
    "ChatSession",
    "ChatTransport",
    "ConversationDetail",
    "ConversationsClient",
    "MessagesReset",
    "SendInProgressError",
    "SessionUpdate",
    "StatusCleared",
    "stored_to_message",
]
