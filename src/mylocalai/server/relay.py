"""Relay of agent events to the browser as streamed frames.

One relay serves one ``POST /api/chat`` request. It emits ``start``, then a
``delta`` per text chunk and a ``tool_call`` per tool invocation, persists
the thread and finishes with ``complete``. Any failure after ``start`` turns
into a single ``error`` frame.
"""

import logging
import time
from collections.abc import AsyncIterator
from uuid import uuid4

from pydantic import BaseModel

from ..agent import (
    AgentFinished,
    ChatAgent,
    RoleMessage,
    TextDelta,
    ToolInvocation,
    ToolOutcome,
    normalize_messages,
)
from ..memory import ConversationStore, StoredMessage
from ..streaming import (
    CompleteEvent,
    DeltaEvent,
    ErrorEvent,
    StartEvent,
    ToolCallEvent,
    WireMessage,
    encode_frame,
)
from .schemas import ChatRequest

logger = logging.getLogger(__name__)


class ChatRelay:
    """Streams one chat turn.

    The relay owns its output sink: after close() nothing more is written,
    and close() may be called any number of times.
    """

    def __init__(self, agent: ChatAgent, store: ConversationStore, request: ChatRequest):
        self._agent = agent
        self._store = store
        self._request = request
        self._is_new_thread = request.thread_id is None
        self._thread_id = request.thread_id or str(uuid4())
        self._closed = False

    @property
    def thread_id(self) -> str:
        return self._thread_id

    @property
    def is_new_thread(self) -> bool:
        return self._is_new_thread

    @property
    def closed(self) -> bool:
        return self._closed

    def _frame(self, event: BaseModel) -> str | None:
        if self._closed:
            return None
        return encode_frame(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Relay for thread %s closed", self._thread_id)

    async def stream(self) -> AsyncIterator[str]:
        """Yield encoded frames for the whole turn."""
        started = time.monotonic()
        try:
            frame = self._frame(StartEvent(thread_id=self._thread_id, is_new_thread=self._is_new_thread))
            if frame is None:
                return
            yield frame

            try:
                async for frame in self._relay_agent():
                    yield frame
            except Exception as e:
                logger.exception("Chat turn failed for thread %s", self._thread_id)
                frame = self._frame(ErrorEvent(error=str(e) or e.__class__.__name__))
                if frame is not None:
                    yield frame
            else:
                logger.info(
                    "Thread %s answered in %.2fs", self._thread_id, time.monotonic() - started
                )
        finally:
            await self.close()

    async def _relay_agent(self) -> AsyncIterator[str]:
        context = normalize_messages(m.model_dump() for m in self._request.messages)
        if not context or context[-1].role != "user":
            raise ValueError("The last message must be a non-empty user message")

        final_text = ""
        async for event in self._agent.astream(
            context,
            system_prompt=self._request.system_prompt(),
            model=self._request.model,
        ):
            frame: str | None = None
            if isinstance(event, TextDelta):
                frame = self._frame(DeltaEvent(content=event.content))
            elif isinstance(event, ToolInvocation):
                logger.info("Tool call: %s", event.call.tool_name)
                frame = self._frame(ToolCallEvent(message=event.description))
            elif isinstance(event, ToolOutcome):
                if event.result.error:
                    logger.warning("Tool %s failed: %s", event.tool_name, event.result.content[:200])
            elif isinstance(event, AgentFinished):
                final_text = event.content
                logger.debug("Agent finished in %d step(s): %s", event.steps, event.metadata)

            if frame is not None:
                yield frame

        snapshot = await self._persist(context, final_text)
        frame = self._frame(CompleteEvent(
            thread_id=self._thread_id,
            messages=[WireMessage(role=m.role, content=m.content) for m in snapshot],
            total_messages=len(snapshot),
            is_new_thread=self._is_new_thread,
        ))
        if frame is not None:
            yield frame

    async def _persist(self, context: list[RoleMessage], reply: str) -> list[StoredMessage]:
        """Save the turn and return the thread as stored.

        A known thread gets the new user message and the reply appended;
        otherwise the request context becomes the thread's history.
        """
        reply_message = StoredMessage(role="assistant", content=reply)

        if not self._is_new_thread and await self._store.exists(self._thread_id):
            await self._store.append_message(
                self._thread_id, StoredMessage(role="user", content=context[-1].content)
            )
            await self._store.append_message(self._thread_id, reply_message)
        else:
            history = [StoredMessage(role=m.role, content=m.content) for m in context]
            await self._store.replace_messages(self._thread_id, [*history, reply_message])

        return await self._store.get_messages(self._thread_id)
