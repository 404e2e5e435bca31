"""Tool-calling chat agent.

Runs the model/tool loop for one user turn and reports progress as a stream
of agent events:
- one ``TextDelta`` per text chunk the model produces
- ``ToolInvocation`` / ``ToolOutcome`` around every tool the model calls
- a single ``AgentFinished`` carrying the final assistant text
"""

import json
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any

from ..config import load_system_prompt
from ..llm import LLMProvider
from ..llm.models import ChatMessage, ToolCallRequest
from .data_structures import (
    AgentEvent,
    AgentFinished,
    RoleMessage,
    TextDelta,
    ToolCall,
    ToolCallResult,
    ToolInvocation,
    ToolOutcome,
    UsageSummary,
)
from .tools import BaseTool, describe_tool_call

DEFAULT_MAX_STEPS = 8


class ChatAgent:
    """A chat agent that streams model output and executes tool calls.

    Hidden design decisions:
    - Tool calling mechanism (native function calling, not prompt parsing)
    - How tool results are fed back into the conversation
    - Step limiting
    """

    def __init__(
        self,
        llm: LLMProvider,
        tools: list[BaseTool] | None = None,
        system_prompt: str | None = None,
        max_steps: int = DEFAULT_MAX_STEPS
    ):
        """Initialize the chat agent.

        Args:
            llm: LLM provider for generation
            tools: List of available tools
            system_prompt: Optional custom system prompt (defaults to the packaged one)
            max_steps: Maximum number of model turns per run
        """
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")

        self._llm = llm
        self._tools: list[BaseTool] = []
        self._tools_registry: dict[str, BaseTool] = {}
        self._max_steps = max_steps
        self._debug_callback: Any | None = None

        for tool in tools or []:
            self.add_tool(tool)

        self._system_prompt = load_system_prompt() if system_prompt is None else system_prompt

    def add_tool(self, tool: BaseTool) -> "ChatAgent":
        """Add a tool to the agent.

        Args:
            tool: The tool to add

        Returns:
            Self for method chaining
        """
        if tool.name in self._tools_registry:
            raise ValueError(f"Tool {tool.name} already registered")

        self._tools.append(tool)
        self._tools_registry[tool.name] = tool
        if self._debug_callback:
            tool.set_debug_callback(self._debug_callback)
        return self

    @property
    def tools(self) -> list[BaseTool]:
        """Get the list of tools."""
        return list(self._tools)

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def max_steps(self) -> int:
        return self._max_steps

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback for detailed execution logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
                      level: 'debug', 'info', 'warning', 'error'
                      component: Source component name
                      message: Log message
        """
        self._debug_callback = callback

        # Propagate callback to all tools
        for tool in self._tools:
            tool.set_debug_callback(callback)

    def _debug(self, level: str, component: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, component, message)

    def _build_conversation(
        self,
        messages: Sequence[RoleMessage],
        system_prompt: str | None
    ) -> list[ChatMessage]:
        conversation = [ChatMessage(role="system", content=system_prompt or self._system_prompt)]
        conversation.extend(ChatMessage(role=m.role, content=m.content) for m in messages)
        return conversation

    @staticmethod
    def _decode_arguments(request: ToolCallRequest) -> dict[str, Any] | None:
        if not request.arguments.strip():
            return {}
        try:
            arguments = json.loads(request.arguments)
        except json.JSONDecodeError:
            return None
        return arguments if isinstance(arguments, dict) else None

    async def _execute_tool(self, tool_call: ToolCall) -> ToolCallResult:
        """Execute a tool call; failures become error results for the model."""
        tool = self._tools_registry.get(tool_call.tool_name)

        if not tool:
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content=f"Error: Tool '{tool_call.tool_name}' not found",
                error=True
            )

        try:
            return await tool.execute(tool_call)
        except Exception as e:
            self._debug("error", "Tool", f"{tool_call.tool_name} raised: {e}")
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content=f"Error executing tool: {str(e)}",
                error=True
            )

    async def astream(
        self,
        messages: Sequence[RoleMessage],
        system_prompt: str | None = None,
        model: str | None = None
    ) -> AsyncIterator[AgentEvent]:
        """Run the tool loop for a conversation.

        Args:
            messages: Prior user/assistant turns, ending with the new user message
            system_prompt: Optional instruction block overriding the default
            model: Model to use (None uses the provider default)

        Yields:
            Agent events in the order they happen; the last one is always
            AgentFinished
        """
        conversation = self._build_conversation(messages, system_prompt)
        tool_specs = [tool.to_llm_spec() for tool in self._tools] or None
        usage = UsageSummary()
        start_time = time.time()
        text = ""

        for step in range(1, self._max_steps + 1):
            self._debug("info", "LLM", f"Step {step}: calling model ({len(conversation)} messages)")
            stream = await self._llm.chat_completion_stream(
                conversation, model=model, tools=tool_specs
            )

            chunks: list[str] = []
            try:
                async for chunk in stream:
                    if chunk:
                        chunks.append(chunk)
                        yield TextDelta(content=chunk)
            finally:
                await stream.aclose()

            usage.add_usage(stream.usage)
            text = "".join(chunks)
            requests = stream.tool_calls

            if not requests:
                self._debug("info", "LLM", f"Final answer after {step} step(s) ({len(text)} chars)")
                yield AgentFinished(
                    content=text,
                    steps=step,
                    metadata=self._metadata(usage, start_time, "completed")
                )
                return

            conversation.append(ChatMessage(role="assistant", content=text, tool_calls=requests))
            for request in requests:
                arguments = self._decode_arguments(request)
                call = ToolCall(id_=request.id, tool_name=request.name, arguments=arguments or {})
                yield ToolInvocation(call=call, description=describe_tool_call(call.tool_name, call.arguments))

                if arguments is None:
                    result = ToolCallResult(
                        tool_call_id=call.id_,
                        content=f"Error: invalid JSON arguments for tool '{call.tool_name}'",
                        error=True
                    )
                else:
                    self._debug("info", "Tool", f"Executing {call.tool_name}...")
                    result = await self._execute_tool(call)
                self._debug("info", "Tool", f"{call.tool_name} returned {len(result.content)} chars")

                yield ToolOutcome(tool_name=call.tool_name, result=result)
                conversation.append(ChatMessage(role="tool", content=result.content, tool_call_id=call.id_))

        self._debug("warning", "Agent", f"Maximum steps ({self._max_steps}) reached")
        yield AgentFinished(
            content=text or f"Maximum steps ({self._max_steps}) reached. Unable to complete the request within the step limit.",
            steps=self._max_steps,
            metadata=self._metadata(usage, start_time, "max_steps_reached")
        )

    @staticmethod
    def _metadata(usage: UsageSummary, start_time: float, status: str) -> dict[str, Any]:
        return {
            "processing_time_seconds": time.time() - start_time,
            "total_input_tokens": usage.total_input_tokens,
            "total_output_tokens": usage.total_output_tokens,
            "total_llm_calls": usage.total_calls,
            "status": status,
        }

    async def close(self) -> None:
        """Close resources."""
        await self._llm.close()
