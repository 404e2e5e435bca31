"""Data structures for the chat agent.

The agent reports progress as a sequence of events which the server relay
translates into wire frames.
"""

import uuid
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ToolCall(BaseModel):
    """Represents a tool call request.

    Attributes:
        id_: Unique identifier for this tool call
        tool_name: Name of the tool to call
        arguments: Arguments for the tool call
    """

    id_: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """Result of executing a tool call.

    Attributes:
        tool_call_id: ID of the tool call that was executed
        content: The result content
        error: Whether an error occurred
    """

    tool_call_id: str
    content: str
    error: bool = False


class RoleMessage(BaseModel):
    """A normalized conversation turn."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class TextDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text_delta"] = "text_delta"
    content: str


class ToolInvocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_invocation"] = "tool_invocation"
    call: ToolCall
    description: str


class ToolOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_outcome"] = "tool_outcome"
    tool_name: str
    result: ToolCallResult


class AgentFinished(BaseModel):
    """Final answer of a run.

    Attributes:
        content: The final assistant text (may include thinking markers)
        steps: Number of model turns taken
        metadata: Usage and timing information
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["finished"] = "finished"
    content: str
    steps: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


AgentEvent = Union[TextDelta, ToolInvocation, ToolOutcome, AgentFinished]


class UsageSummary(BaseModel):
    """Summary of LLM token usage across all calls.

    Attributes:
        total_calls: Total number of LLM API calls
        total_input_tokens: Total input tokens across all calls
        total_output_tokens: Total output tokens across all calls
    """

    total_calls: int = Field(default=0, description="Total API calls")
    total_input_tokens: int = Field(default=0, description="Total input tokens")
    total_output_tokens: int = Field(default=0, description="Total output tokens")

    def add_usage(self, usage: dict[str, Any] | None) -> None:
        """Add usage statistics for one model call.

        Args:
            usage: Provider usage dict (prompt_tokens/completion_tokens), or None
        """
        self.total_calls += 1
        if usage:
            self.total_input_tokens += usage.get("prompt_tokens", 0) or 0
            self.total_output_tokens += usage.get("completion_tokens", 0) or 0
