"""Wire events of the chat streaming protocol.

Each event travels as one ``data: <json>\\n\\n`` frame. A stream is exactly
one ``start``, any number of ``delta``/``tool_call`` events, then exactly one
of ``complete`` or ``error``.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

DATA_PREFIX = "data: "


class WireMessage(BaseModel):
    """A role/content pair as carried by ``complete`` events."""

    role: Literal["user", "assistant"]
    content: str


class StartEvent(BaseModel):
    type: Literal["start"] = "start"
    thread_id: str
    is_new_thread: bool = False


class DeltaEvent(BaseModel):
    type: Literal["delta"] = "delta"
    content: str
    role: Literal["assistant"] = "assistant"


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    message: str


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    thread_id: str
    messages: list[WireMessage] = Field(default_factory=list)
    total_messages: int = 0
    is_new_thread: bool = False

    def final_assistant_text(self) -> str | None:
        """Return the content of the last assistant message, if any."""
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message.content
        return None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    Union[StartEvent, DeltaEvent, ToolCallEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

TERMINAL_EVENTS = (CompleteEvent, ErrorEvent)

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(payload: dict[str, Any]) -> StreamEvent:
    """Validate a decoded frame payload into a typed event.

    Raises:
        ValidationError: If the payload is not a known event shape
    """
    return _event_adapter.validate_python(payload)


def try_parse_event(payload: dict[str, Any]) -> StreamEvent | None:
    """Like parse_event but returns None for unknown or malformed payloads."""
    try:
        return parse_event(payload)
    except ValidationError:
        return None


def encode_frame(event: BaseModel) -> str:
    """Serialize an event as one SSE data frame."""
    return f"{DATA_PREFIX}{event.model_dump_json()}\n\n"
