"""Unit tests for the chat agent tool loop."""
import random
from typing import Any

import pytest
from conftest import ScriptedTurn

from mylocalai.agent import (
    AgentFinished,
    BaseTool,
    ChatAgent,
    RoleMessage,
    RollDiceTool,
    TextDelta,
    ToolCall,
    ToolCallResult,
    ToolInvocation,
    ToolOutcome,
)
from mylocalai.llm import ToolCallRequest


class ExplodingTool(BaseTool):
    """Tool that always raises."""

    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        raise RuntimeError("kaboom")


async def _run(agent: ChatAgent, text: str = "hi", **kwargs) -> list:
    return [event async for event in agent.astream([RoleMessage(role="user", content=text)], **kwargs)]


def _dice_call(arguments: str = '{"sides": 6}', call_id: str = "call-1") -> ToolCallRequest:
    return ToolCallRequest(id=call_id, name="roll_dice", arguments=arguments)


class TestChatAgent:
    """Tests for ChatAgent."""

    def test_invalid_max_steps(self, fake_llm_factory):
        """Test that max_steps must be positive."""
        with pytest.raises(ValueError):
            ChatAgent(fake_llm_factory(), system_prompt="s", max_steps=0)

    def test_duplicate_tool_rejected(self, fake_llm_factory):
        """Test that tool names are unique."""
        agent = ChatAgent(fake_llm_factory(), tools=[RollDiceTool()], system_prompt="s")
        with pytest.raises(ValueError, match="already registered"):
            agent.add_tool(RollDiceTool())

    def test_default_system_prompt_loaded(self, fake_llm_factory):
        """Test that the packaged instruction block is used by default."""
        agent = ChatAgent(fake_llm_factory())
        assert agent.system_prompt.strip()

    @pytest.mark.asyncio
    async def test_plain_answer_streams_deltas(self, fake_llm_factory):
        """Test a single-step answer without tools."""
        llm = fake_llm_factory(ScriptedTurn(["Hello", " world"]))
        agent = ChatAgent(llm, system_prompt="Be nice.")

        events = await _run(agent, model="qwen3:8b")

        assert events[:2] == [TextDelta(content="Hello"), TextDelta(content=" world")]
        finished = events[-1]
        assert isinstance(finished, AgentFinished)
        assert finished.content == "Hello world"
        assert finished.steps == 1
        assert finished.metadata["status"] == "completed"
        assert finished.metadata["total_llm_calls"] == 1

        request = llm.requests[0]
        assert request["model"] == "qwen3:8b"
        assert request["tools"] is None
        assert [(m.role, m.content) for m in request["messages"]] == [("system", "Be nice."), ("user", "hi")]

    @pytest.mark.asyncio
    async def test_system_prompt_override(self, fake_llm_factory):
        """Test a per-run instruction block."""
        llm = fake_llm_factory(ScriptedTurn(["ok"]))
        await _run(ChatAgent(llm, system_prompt="default"), system_prompt="override")
        assert llm.requests[0]["messages"][0].content == "override"

    @pytest.mark.asyncio
    async def test_tool_round_trip(self, fake_llm_factory):
        """Test that a tool call is executed and fed back to the model."""
        llm = fake_llm_factory(
            ScriptedTurn([], tool_calls=[_dice_call()]),
            ScriptedTurn(["You got it"]),
        )
        agent = ChatAgent(llm, tools=[RollDiceTool(rng=random.Random(7))], system_prompt="s")

        events = await _run(agent, "roll a d6")

        assert [type(e) for e in events] == [ToolInvocation, ToolOutcome, TextDelta, AgentFinished]
        invocation, outcome = events[0], events[1]
        assert invocation.description == "Rolling a 6-sided die"
        assert invocation.call.arguments == {"sides": 6}
        assert not outcome.result.error
        assert outcome.result.content.startswith("🎲 You rolled a ")
        assert events[-1].steps == 2

        assert llm.requests[0]["tools"][0]["function"]["name"] == "roll_dice"
        followup = llm.requests[1]["messages"]
        assert followup[-2].role == "assistant"
        assert followup[-2].tool_calls[0].id == "call-1"
        assert followup[-1].role == "tool"
        assert followup[-1].tool_call_id == "call-1"
        assert followup[-1].content == outcome.result.content

    @pytest.mark.asyncio
    async def test_invalid_arguments_reported_to_model(self, fake_llm_factory):
        """Test that undecodable arguments become an error result."""
        llm = fake_llm_factory(
            ScriptedTurn([], tool_calls=[_dice_call(arguments="{not json")]),
            ScriptedTurn(["sorry"]),
        )
        events = await _run(ChatAgent(llm, tools=[RollDiceTool()], system_prompt="s"))

        outcome = next(e for e in events if isinstance(e, ToolOutcome))
        assert outcome.result.error
        assert "invalid JSON" in outcome.result.content

    @pytest.mark.asyncio
    async def test_unknown_tool(self, fake_llm_factory):
        """Test that calling an unregistered tool is reported, not raised."""
        llm = fake_llm_factory(
            ScriptedTurn([], tool_calls=[ToolCallRequest(id="c", name="teleport", arguments="{}")]),
            ScriptedTurn(["cannot"]),
        )
        events = await _run(ChatAgent(llm, system_prompt="s"))

        outcome = next(e for e in events if isinstance(e, ToolOutcome))
        assert outcome.result.error
        assert "not found" in outcome.result.content

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error_result(self, fake_llm_factory):
        """Test that tool failures do not abort the run."""
        llm = fake_llm_factory(
            ScriptedTurn([], tool_calls=[ToolCallRequest(id="c", name="explode", arguments="")]),
            ScriptedTurn(["it failed"]),
        )
        debug = []
        agent = ChatAgent(llm, tools=[ExplodingTool()], system_prompt="s")
        agent.set_debug_callback(lambda level, component, message: debug.append((level, component)))

        events = await _run(agent)

        outcome = next(e for e in events if isinstance(e, ToolOutcome))
        assert outcome.result.content == "Error executing tool: kaboom"
        assert ("error", "Tool") in debug
        assert isinstance(events[-1], AgentFinished)

    @pytest.mark.asyncio
    async def test_step_limit(self, fake_llm_factory):
        """Test that the loop stops after max_steps model turns."""
        llm = fake_llm_factory(
            ScriptedTurn(["thinking..."], tool_calls=[_dice_call(call_id="a")]),
            ScriptedTurn([], tool_calls=[_dice_call(call_id="b")]),
            ScriptedTurn(["never reached"]),
        )
        agent = ChatAgent(llm, tools=[RollDiceTool()], system_prompt="s", max_steps=2)

        events = await _run(agent)

        finished = events[-1]
        assert isinstance(finished, AgentFinished)
        assert finished.metadata["status"] == "max_steps_reached"
        assert "Maximum steps (2)" in finished.content
        assert len(llm.requests) == 2

    @pytest.mark.asyncio
    async def test_close_closes_llm(self, fake_llm_factory):
        """Test that closing the agent closes its provider."""
        llm = fake_llm_factory()
        await ChatAgent(llm, system_prompt="s").close()
        assert llm.closed
