"""Pytest configuration and shared fixtures."""
from collections.abc import AsyncIterator
from typing import Any

import pytest

from mylocalai.llm import ChatMessage, LLMProvider, LLMResponse, StreamingResponse, ToolCallRequest
from mylocalai.memory import create_conversation_store


class ScriptedTurn:
    """One model turn: text chunks, then optional tool calls."""

    def __init__(self, chunks: list[str], tool_calls: list[ToolCallRequest] | None = None):
        self.chunks = chunks
        self.tool_calls = tool_calls or []


class FakeLLMProvider(LLMProvider):
    """LLM provider that replays scripted turns and records every request."""

    def __init__(self, turns: list[ScriptedTurn] | None = None, error: Exception | None = None):
        self._turns = list(turns or [])
        self._error = error
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    @property
    def model(self) -> str:
        return "fake-model"

    def _next_turn(self) -> ScriptedTurn:
        if not self._turns:
            return ScriptedTurn(["(no more turns)"])
        return self._turns.pop(0)

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        turn = self._next_turn()
        self.requests.append({"messages": list(messages), "model": model, "tools": tools})
        return LLMResponse(content="".join(turn.chunks), model=model or self.model, tool_calls=turn.tool_calls)

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        self.requests.append({"messages": list(messages), "model": model, "tools": tools})
        if self._error is not None:
            raise self._error
        turn = self._next_turn()
        response = StreamingResponse()

        async def generate() -> AsyncIterator[str]:
            for chunk in turn.chunks:
                yield chunk
            response.set_usage({"prompt_tokens": 10, "completion_tokens": len(turn.chunks)})
            response.set_tool_calls(turn.tool_calls)

        return response.attach(generate())

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_llm_factory():
    """Build a FakeLLMProvider from scripted turns."""
    def _factory(*turns: ScriptedTurn, error: Exception | None = None) -> FakeLLMProvider:
        return FakeLLMProvider(list(turns), error=error)
    return _factory


@pytest.fixture
def memory_store():
    """A fresh in-memory conversation store."""
    return create_conversation_store("memory")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
