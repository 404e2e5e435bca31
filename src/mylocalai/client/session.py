"""Chat session: the UI-side owner of message state.

A ``ChatSession`` sends user messages through a ``ChatTransport``, folds the
resulting events with a ``StreamReducer`` and applies the reducer's update
records to its message list. Views subscribe with ``on_update`` and redraw;
they never mutate the list themselves.

Hidden design decisions:
- Request assembly (system block + prior turns)
- When user and assistant messages are persisted locally
- Status banner lifetime
- Cancellation of an in-flight send
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Union

from pydantic import BaseModel, ConfigDict

from ..llm import ModelStatus
from ..memory import ConversationNotFoundError, ConversationStore, StoredMessage
from ..server.schemas import ChatRequest, RequestMessage
from ..streaming import (
    Message,
    MessageAppended,
    MessageDiscarded,
    MessageFinalized,
    MessageUpserted,
    Sender,
    StatusChanged,
    StatusUpdate,
    StreamCompleted,
    StreamFailed,
    StreamOpened,
    StreamReducer,
    Update,
    extract_thinking,
)
from .api import ConversationsClient
from .transport import ChatTransport

logger = logging.getLogger(__name__)

SUCCESS_CLEAR_DELAY = 2.0
ERROR_CLEAR_DELAY = 5.0
UNAVAILABLE_CLEAR_DELAY = 3.0


class SendInProgressError(RuntimeError):
    """Raised when a message is sent while another send is still running."""


class StatusCleared(BaseModel):
    """The status banner timed out or was dismissed."""

    model_config = ConfigDict(frozen=True)


class MessagesReset(BaseModel):
    """The whole message list was replaced (thread switch or new chat)."""

    model_config = ConfigDict(frozen=True)

    thread_id: str | None


SessionUpdate = Union[Update, StatusCleared, MessagesReset]
UpdateCallback = Callable[[SessionUpdate], None]
ThreadsChangedCallback = Callable[[str], None]
StatusChecker = Callable[[], Awaitable[ModelStatus]]


def stored_to_message(stored: StoredMessage) -> Message:
    """Convert a persisted message to its display form.

    Server-side threads keep raw assistant text, so thinking is split out
    here when the store did not already do it.
    """
    text, thinking = stored.content, stored.thinking
    if stored.role == "assistant" and not thinking:
        parsed = extract_thinking(text)
        text, thinking = parsed.content, parsed.thinking
    return Message(
        id=stored.id,
        text=text,
        thinking=thinking,
        sender=Sender(stored.role),
        timestamp=stored.timestamp,
        response_time=stored.response_time,
    )


class ChatSession:
    """Message list, current thread and status banner for one chat view."""

    def __init__(
        self,
        transport: ChatTransport,
        model: str,
        system_prompt: str | None = None,
        store: ConversationStore | None = None,
        conversations: ConversationsClient | None = None,
        status_checker: StatusChecker | None = None,
        clock: Callable[[], float] = time.monotonic,
        success_clear_delay: float = SUCCESS_CLEAR_DELAY,
        error_clear_delay: float = ERROR_CLEAR_DELAY,
    ):
        """Initialize the session.

        Args:
            transport: Streams chat events from the server
            model: Model name sent with every request
            system_prompt: Instruction block sent first in every request
            store: Optional local store that keeps a copy of each thread
            conversations: Optional client for loading server-side threads
            status_checker: Optional model check run before each send; a failed
                check stops the send and shows its message
            clock: Monotonic clock used for response times
            success_clear_delay: Seconds a success banner stays visible
            error_clear_delay: Seconds an error banner stays visible
        """
        self._transport = transport
        self._model = model
        self._system_prompt = system_prompt
        self._store = store
        self._conversations = conversations
        self._status_checker = status_checker
        self._clock = clock
        self._success_clear_delay = success_clear_delay
        self._error_clear_delay = error_clear_delay

        self._messages: list[Message] = []
        self._notice_ids: set[str] = set()
        # User turns shown before the server assigned a thread id
        self._pending_user: list[Message] = []
        self.thread_id: str | None = None
        self.status: StatusUpdate | None = None
        self.last_error: str | None = None

        self._send_task: asyncio.Task | None = None
        self._clear_handle: asyncio.TimerHandle | None = None
        self._subscribers: list[UpdateCallback] = []
        self._thread_listeners: list[ThreadsChangedCallback] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def is_sending(self) -> bool:
        return self._send_task is not None

    def on_update(self, callback: UpdateCallback) -> None:
        """Subscribe to every applied update."""
        self._subscribers.append(callback)

    def on_threads_changed(self, callback: ThreadsChangedCallback) -> None:
        """Subscribe to thread creation (called with the new thread id)."""
        self._thread_listeners.append(callback)

    def _notify(self, update: SessionUpdate) -> None:
        for callback in self._subscribers:
            callback(update)

    # Status banner

    def _set_status(self, status: StatusUpdate) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None

        self.status = status
        if not status.is_loading:
            delay = self._error_clear_delay if status.icon == "❌" else self._success_clear_delay
            self._schedule_clear(delay)

    def _schedule_clear(self, delay: float) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
        self._clear_handle = asyncio.get_running_loop().call_later(delay, self.clear_status)

    def _show(self, icon: str, message: str, is_loading: bool = True) -> None:
        update = StatusChanged(status=StatusUpdate(icon=icon, message=message, is_loading=is_loading))
        self._set_status(update.status)
        self._notify(update)

    def clear_status(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
        if self.status is not None:
            self.status = None
            self._notify(StatusCleared())

    # Message list

    def _index_of(self, message_id: str) -> int | None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    async def _persist(self, message: Message) -> None:
        if self._store is None or self.thread_id is None:
            return
        await self._store.append_message(self.thread_id, StoredMessage(
            id=message.id,
            role=message.sender.value,
            content=message.text,
            thinking=message.thinking,
            response_time=message.response_time,
        ))

    async def apply(self, update: Update) -> None:
        """Apply one reducer update to the session state."""
        if isinstance(update, StatusChanged):
            self._set_status(update.status)

        elif isinstance(update, StreamOpened):
            if self.thread_id is None or update.is_new_thread:
                self.thread_id = update.thread_id
            pending, self._pending_user = self._pending_user, []
            for message in pending:
                await self._persist(message)

        elif isinstance(update, MessageUpserted):
            index = self._index_of(update.message.id)
            if index is None:
                self._messages.append(update.message)
            else:
                self._messages[index] = update.message

        elif isinstance(update, MessageFinalized):
            index = self._index_of(update.provisional_id)
            if index is None:
                self._messages.append(update.message)
            else:
                self._messages[index] = update.message

        elif isinstance(update, MessageDiscarded):
            index = self._index_of(update.provisional_id)
            if index is not None:
                del self._messages[index]

        elif isinstance(update, MessageAppended):
            self._messages.append(update.message)
            self._notice_ids.add(update.message.id)

        elif isinstance(update, StreamCompleted):
            if update.thread_id:
                self.thread_id = update.thread_id
            await self._persist(update.message)
            if update.refresh_threads and self.thread_id:
                for listener in self._thread_listeners:
                    listener(self.thread_id)

        elif isinstance(update, StreamFailed):
            self.last_error = update.error

        self._notify(update)

    # Sending

    def build_request(self, text: str) -> ChatRequest:
        """Assemble the request for a new user message.

        Prior turns are every user/assistant message in the list except
        error notices, followed by the new message.
        """
        messages: list[RequestMessage] = []
        if self._system_prompt:
            messages.append(RequestMessage(role="system", content=self._system_prompt))
        for message in self._messages:
            if message.id in self._notice_ids or not message.text.strip():
                continue
            messages.append(RequestMessage(role=message.sender.value, content=message.text))
        messages.append(RequestMessage(role="user", content=text))
        return ChatRequest(model=self._model, messages=messages, thread_id=self.thread_id)

    async def send(self, text: str) -> Message | None:
        """Send a user message and stream the reply into the session.

        Returns:
            The final assistant message, or None when the send failed

        Raises:
            SendInProgressError: If another send is still running
            ValueError: If the text is blank
        """
        if self._send_task is not None:
            raise SendInProgressError("A message is already being sent")
        if not text.strip():
            raise ValueError("Message text must not be empty")

        self._send_task = asyncio.current_task()
        self.last_error = None
        reducer = StreamReducer(started_at=self._clock(), clock=self._clock)
        try:
            return await self._send(text.strip(), reducer)
        except asyncio.CancelledError:
            await self._abandon(reducer)
            raise
        finally:
            self._send_task = None

    async def _send(self, text: str, reducer: StreamReducer) -> Message | None:
        self._show("📤", "Sending message to server")
        request = self.build_request(text)

        user_message = Message(text=text, sender=Sender.USER)
        self._messages.append(user_message)
        self._notify(MessageAppended(message=user_message))
        if self.thread_id is not None:
            await self._persist(user_message)
        else:
            self._pending_user.append(user_message)

        if self._status_checker is not None:
            self._show("🔍", "Checking Ollama status")
            status = await self._status_checker()
            if not status.success:
                await self._report_unavailable(status)
                return None

        self._show("⚡", "Preparing request with conversation history")
        self._show("🤖", "Waiting for LLM response")

        events = self._transport.stream_events(request)
        try:
            async for event in events:
                for update in reducer.apply(event):
                    await self.apply(update)
                if reducer.is_terminal:
                    break
        finally:
            await events.aclose()

        for update in reducer.finish():
            await self.apply(update)
        return reducer.final_message

    async def _report_unavailable(self, status: ModelStatus) -> None:
        notice = Message(text=status.message or status.error or "Ollama not available", sender=Sender.ASSISTANT)
        await self.apply(MessageAppended(message=notice))
        self.last_error = status.error
        update = StatusChanged(status=StatusUpdate(icon="❌", message="Ollama not available"))
        self.status = update.status
        self._schedule_clear(UNAVAILABLE_CLEAR_DELAY)
        self._notify(update)

    async def _abandon(self, reducer: StreamReducer) -> None:
        """Drop whatever the cancelled send left behind."""
        if not reducer.is_terminal and self._index_of(reducer.provisional_id) is not None:
            await self.apply(MessageDiscarded(provisional_id=reducer.provisional_id))
        self.clear_status()
        logger.info("Send cancelled")

    def cancel(self) -> bool:
        """Cancel the in-flight send, if any.

        Returns:
            True if a send was running
        """
        task = self._send_task
        if task is None or task.done():
            return False
        task.cancel()
        return True

    # Threads

    def new_conversation(self) -> None:
        """Start an empty thread; the server assigns its id on first send."""
        self.cancel()
        self._reset([], None)

    async def load_conversation(self, thread_id: str) -> list[Message]:
        """Show a stored thread, preferring the local store over the server.

        Raises:
            ConversationNotFoundError: If no source knows the thread
        """
        self.cancel()

        stored: list[StoredMessage] | None = None
        if self._store is not None and await self._store.exists(thread_id):
            stored = await self._store.get_messages(thread_id)
        elif self._conversations is not None:
            detail = await self._conversations.get_conversation(thread_id)
            stored = detail.messages
            if self._store is not None:
                await self._store.replace_messages(thread_id, stored)

        if stored is None:
            raise ConversationNotFoundError(thread_id)

        self._reset([stored_to_message(m) for m in stored], thread_id)
        return self.messages

    async def aclose(self) -> None:
        """Cancel any send and release the transport."""
        self.cancel()
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
        await self._transport.aclose()

    def _reset(self, messages: list[Message], thread_id: str | None) -> None:
        self._messages = messages
        self._notice_ids.clear()
        self._pending_user = []
        self.thread_id = thread_id
        self.last_error = None
        self._notify(MessagesReset(thread_id=thread_id))
