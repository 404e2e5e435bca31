from collections.abc import AsyncIterator
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolCallRequest(BaseModel):
    """A function call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-assigned call identifier")
    name: str = Field(description="Name of the tool to call")
    arguments: str = Field(default="", description="JSON-encoded arguments")


class StreamingResponse:
    """Wrapper for streaming LLM responses that captures usage and tool calls.

    Acts as an async iterator for text chunks while storing token usage and
    requested tool calls, both of which become available at the end of the
    stream.

    Usage:
        stream = await provider.chat_completion_stream(messages, tools=specs)
        async for chunk in stream:
            print(chunk, end="")
        # After iteration
        print(stream.usage)       # {"prompt_tokens": 100, ...}
        print(stream.tool_calls)  # [ToolCallRequest(...)] or []
    """

    def __init__(self, async_iter: AsyncIterator[str] | None = None):
        """Initialize with an optional async iterator of text chunks.

        Args:
            async_iter: Async iterator yielding text chunks; may be attached
                later with attach() when the generator needs this object
        """
        self._iter = async_iter
        self._usage: dict[str, Any] | None = None
        self._tool_calls: list[ToolCallRequest] = []

    def attach(self, async_iter: AsyncIterator[str]) -> "StreamingResponse":
        """Attach the underlying chunk iterator."""
        self._iter = async_iter
        return self

    @property
    def usage(self) -> dict[str, Any] | None:
        """Get token usage info (available after iteration completes)."""
        return self._usage

    def set_usage(self, usage: dict[str, Any]) -> None:
        """Set token usage info (called by provider at end of stream)."""
        self._usage = usage

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        """Get tool calls requested by the model (available after iteration)."""
        return list(self._tool_calls)

    def set_tool_calls(self, tool_calls: list[ToolCallRequest]) -> None:
        """Set requested tool calls (called by provider at end of stream)."""
        self._tool_calls = list(tool_calls)

    def __aiter__(self) -> "StreamingResponse":
        """Return self as async iterator."""
        return self

    async def __anext__(self) -> str:
        """Get next chunk from the underlying iterator."""
        if self._iter is None:
            raise StopAsyncIteration
        return await self._iter.__anext__()

    async def aclose(self) -> None:
        """Close the underlying iterator if it supports it."""
        close = getattr(self._iter, "aclose", None)
        if close is not None:
            await close()


class ChatMessage(BaseModel):
    """Represents a chat message in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"] = Field(
        description="Role of the message sender"
    )
    content: str = Field(default="", description="Content of the message")
    tool_calls: list[ToolCallRequest] | None = Field(
        default=None,
        description="Tool calls requested by an assistant message"
    )
    tool_call_id: str | None = Field(
        default=None,
        description="Call answered by a tool message"
    )


class LLMResponse(BaseModel):
    """Response from an LLM provider."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Generated text content")
    model: str = Field(description="Model that generated the response")
    usage: dict[str, int] | None = Field(
        default=None,
        description="Token usage information"
    )
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
