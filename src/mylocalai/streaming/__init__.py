"""Streaming response pipeline.

Module structure (each module hides one design decision):
- thinking.py: thinking marker convention and extraction
- events.py: wire event shapes and frame encoding
- frames.py: chunk buffering and frame decoding
- models.py: UI message and update record shapes
- reducer.py: event-to-state transitions

Nothing here performs I/O; transports live in ``mylocalai.client``.
"""

from .events import (
    CompleteEvent,
    DeltaEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    ToolCallEvent,
    WireMessage,
    encode_frame,
    parse_event,
    try_parse_event,
)
from .frames import FrameParser, iter_events, iter_payloads
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
from .reducer import StreamReducer, StreamState
from .thinking import ParsedResponse, extract_thinking, has_thinking_tags

__all__ = [
    "CompleteEvent",
    "DeltaEvent",
    "ErrorEvent",
    "FrameParser",
    "Message",
    "MessageAppended",
    "MessageDiscarded",
    "MessageFinalized",
    "MessageUpserted",
    "ParsedResponse",
    "Sender",
    "StartEvent",
    "StatusChanged",
    "StatusUpdate",
    "StreamCompleted",
    "StreamEvent",
    "StreamFailed",
    "StreamOpened",
    "StreamReducer",
    "StreamState",
    "ToolCallEvent",
    "Update",
    "WireMessage",
    "encode_frame",
    "extract_thinking",
    "has_thinking_tags",
    "iter_events",
    "iter_payloads",
    "parse_event",
    "try_parse_event",
]
