"""State machine folding stream events into UI message state.

States::

    IDLE --start--> STARTED --delta/tool_call--> STREAMING --complete--> FINALIZED
      \\________________ any --error--> FAILED _________________________/

FINALIZED and FAILED are terminal; later events are ignored.
"""

import logging
import time
import uuid
from collections.abc import Callable
from enum import Enum

from .events import (
    CompleteEvent,
    DeltaEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    ToolCallEvent,
)
from .models import (
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
    Update,
)
from .thinking import extract_thinking

logger = logging.getLogger(__name__)

TRUNCATED_EMPTY_MESSAGE = "The response ended before any text was received. Please try again."


class StreamState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    FAILED = "failed"


class StreamReducer:
    """Reduces one send's event stream into message updates.

    One reducer instance handles exactly one send. Every method returns the
    list of update records the host should apply, in order.

    Hidden design decisions:
    - Provisional id lifecycle (one per send, promoted or discarded once)
    - Resent cumulative text detection
    - Thinking/content re-extraction on every delta
    - Fallback when the stream ends without a terminal event
    """

    def __init__(
        self,
        started_at: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] | None = None,
        dedupe_cumulative: bool = False
    ):
        """Initialize the reducer.

        Args:
            started_at: Clock reading when the send began (defaults to now)
            clock: Monotonic clock used for response time
            id_factory: Produces message ids (defaults to uuid4 strings)
            dedupe_cumulative: For servers that resend cumulative text, treat
                a delta that repeats the whole accumulated text as a resend and
                append only its new suffix. Off by default; deltas are
                incremental fragments and repeats are real text
        """
        self._clock = clock
        self._started_at = clock() if started_at is None else started_at
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._dedupe_cumulative = dedupe_cumulative

        self.state = StreamState.IDLE
        self.thread_id: str | None = None
        self.is_new_thread = False
        self.provisional_id = f"streaming-{self._new_id()}"
        self._accumulated = ""
        self._last_seen_length = 0
        self._provisional_shown = False
        self.final_message: Message | None = None

    @property
    def accumulated(self) -> str:
        """Raw text accumulated from deltas so far."""
        return self._accumulated

    @property
    def is_terminal(self) -> bool:
        return self.state in (StreamState.FINALIZED, StreamState.FAILED)

    def apply(self, event: StreamEvent) -> list[Update]:
        """Apply one event and return the resulting updates."""
        if self.is_terminal:
            logger.debug("Ignoring %s event after stream ended", event.type)
            return []

        if isinstance(event, StartEvent):
            return self._on_start(event)
        if isinstance(event, DeltaEvent):
            return self._on_delta(event)
        if isinstance(event, ToolCallEvent):
            return self._on_tool_call(event)
        if isinstance(event, CompleteEvent):
            return self._on_complete(event)
        if isinstance(event, ErrorEvent):
            return self.fail(event.error)

        raise ValueError(f"Unexpected event type: {type(event)}")

    def finish(self) -> list[Update]:
        """Handle the transport ending without a terminal event.

        Whatever text arrived is finalized as if the stream had completed.
        """
        if self.is_terminal:
            return []

        if not self._accumulated.strip():
            logger.warning("Stream ended with no terminal event and no text")
            return self.fail(TRUNCATED_EMPTY_MESSAGE, prefix=False)

        logger.warning(
            "Stream ended with no terminal event, keeping %d accumulated chars",
            len(self._accumulated),
        )
        return self._finalize(self._accumulated)

    def fail(self, error: str, prefix: bool = True) -> list[Update]:
        """Move to FAILED and surface the error as an assistant message."""
        if self.is_terminal:
            return []

        self.state = StreamState.FAILED
        updates: list[Update] = []
        if self._provisional_shown:
            updates.append(MessageDiscarded(provisional_id=self.provisional_id))
            self._provisional_shown = False

        text = f"Error: {error}" if prefix else error
        updates.extend([
            MessageAppended(message=Message(
                id=self._new_id(),
                text=text,
                sender=Sender.ASSISTANT,
            )),
            StatusChanged(status=StatusUpdate(icon="❌", message=f"Error: {error}")),
            StreamFailed(error=error),
        ])
        return updates

    def _on_start(self, event: StartEvent) -> list[Update]:
        if self.state is not StreamState.IDLE:
            logger.debug("Ignoring duplicate start event")
            return []

        self.state = StreamState.STARTED
        self.thread_id = event.thread_id
        self.is_new_thread = event.is_new_thread
        return [
            StreamOpened(thread_id=event.thread_id, is_new_thread=event.is_new_thread),
            StatusChanged(status=StatusUpdate(
                icon="🤖", message="Receiving response", is_loading=True
            )),
        ]

    def _on_delta(self, event: DeltaEvent) -> list[Update]:
        if self.state is StreamState.IDLE:
            logger.debug("Delta received before start, streaming anyway")
        self.state = StreamState.STREAMING

        fragment = event.content
        if (
            self._dedupe_cumulative
            and self._last_seen_length
            and fragment.startswith(self._accumulated)
        ):
            fragment = fragment[self._last_seen_length:]
        if not fragment:
            return []

        self._accumulated += fragment
        self._last_seen_length = len(self._accumulated)

        parsed = extract_thinking(self._accumulated)
        self._provisional_shown = True
        return [MessageUpserted(message=Message(
            id=self.provisional_id,
            text=parsed.content,
            thinking=parsed.thinking,
            sender=Sender.ASSISTANT,
        ))]

    def _on_tool_call(self, event: ToolCallEvent) -> list[Update]:
        if self.state is StreamState.STARTED:
            self.state = StreamState.STREAMING
        return [StatusChanged(status=StatusUpdate(
            icon="🔧", message=event.message, is_loading=True
        ))]

    def _on_complete(self, event: CompleteEvent) -> list[Update]:
        self.thread_id = event.thread_id or self.thread_id
        self.is_new_thread = self.is_new_thread or event.is_new_thread

        authoritative = event.final_assistant_text()
        if authoritative is None:
            logger.debug("Complete event carried no assistant message, using deltas")
            authoritative = self._accumulated
        return self._finalize(authoritative)

    def _finalize(self, raw_text: str) -> list[Update]:
        self.state = StreamState.FINALIZED
        parsed = extract_thinking(raw_text)
        message = Message(
            id=self._new_id(),
            text=parsed.content,
            thinking=parsed.thinking,
            sender=Sender.ASSISTANT,
            response_time=round(self._clock() - self._started_at, 2),
        )
        self.final_message = message
        self._provisional_shown = False

        return [
            MessageFinalized(provisional_id=self.provisional_id, message=message),
            StatusChanged(status=StatusUpdate(icon="✅", message="Response complete")),
            StreamCompleted(
                thread_id=self.thread_id,
                message=message,
                is_new_thread=self.is_new_thread,
                refresh_threads=self.is_new_thread,
            ),
        ]
