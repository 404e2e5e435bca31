"""Line-oriented SSE frame parsing.

Chunks arrive with no alignment to frame boundaries. The parser keeps the
trailing partial line in a buffer and only decodes complete lines. A line
that fails to decode is dropped; the stream is never aborted by bad data.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from .events import DATA_PREFIX, StreamEvent, try_parse_event

logger = logging.getLogger(__name__)


class FrameParser:
    """Incremental parser for ``data: <json>`` framed streams.

    Usage:
        parser = FrameParser()
        for chunk in chunks:
            for payload in parser.feed(chunk):
                handle(payload)
        for payload in parser.flush():
            handle(payload)
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[dict[str, Any]]:
        """Add a chunk and return the payloads of every completed line."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        *lines, self._buffer = self._buffer.split("\n")
        return [payload for payload in map(self._parse_line, lines) if payload is not None]

    def flush(self) -> list[dict[str, Any]]:
        """Parse whatever is left once the underlying stream has ended."""
        rest = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        payload = self._parse_line(rest)
        return [payload] if payload is not None else []

    @property
    def pending(self) -> str:
        """Text buffered while waiting for the end of its line."""
        return self._buffer

    def _parse_line(self, line: str) -> dict[str, Any] | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        try:
            payload = json.loads(line[len(DATA_PREFIX):])
        except json.JSONDecodeError:
            logger.debug("Skipping malformed frame: %.80s", line)
            return None

        if not isinstance(payload, dict):
            logger.debug("Skipping non-object frame: %.80s", line)
            return None
        return payload


async def iter_payloads(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Lazily decode frame payloads from an async byte stream."""
    parser = FrameParser()
    async for chunk in chunks:
        for payload in parser.feed(chunk):
            yield payload
    for payload in parser.flush():
        yield payload


async def iter_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Lazily decode typed stream events, skipping unknown payloads."""
    async for payload in iter_payloads(chunks):
        event = try_parse_event(payload)
        if event is None:
            logger.debug("Skipping unknown event payload: %s", payload.get("type"))
            continue
        yield event
