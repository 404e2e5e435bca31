"""Unit tests for the client chat session."""
import asyncio

import httpx
import pytest

from mylocalai.client import (
    ChatSession,
    ConversationsClient,
    MessagesReset,
    SendInProgressError,
    StatusCleared,
    stored_to_message,
)
from mylocalai.llm import ModelStatus
from mylocalai.memory import ConversationNotFoundError, StoredMessage
from mylocalai.streaming import (
    CompleteEvent,
    DeltaEvent,
    ErrorEvent,
    Sender,
    StartEvent,
    StatusChanged,
    ToolCallEvent,
    WireMessage,
)


class FakeTransport:
    """Replays scripted events; optionally blocks afterwards until released."""

    def __init__(self, *scripts, gate: asyncio.Event | None = None):
        self._scripts = list(scripts)
        self._gate = gate
        self.requests = []
        self.closed = False

    async def stream_events(self, request):
        self.requests.append(request)
        events = self._scripts.pop(0) if self._scripts else []
        for event in events:
            yield event
        if self._gate is not None:
            await self._gate.wait()

    async def aclose(self) -> None:
        self.closed = True


def _reply(thread_id: str, text: str, is_new_thread: bool = True) -> list:
    return [
        StartEvent(thread_id=thread_id, is_new_thread=is_new_thread),
        DeltaEvent(content=text),
        CompleteEvent(
            thread_id=thread_id,
            messages=[WireMessage(role="assistant", content=text)],
            total_messages=2,
            is_new_thread=is_new_thread,
        ),
    ]


def _session(transport, **kwargs) -> ChatSession:
    kwargs.setdefault("system_prompt", "You are helpful.")
    return ChatSession(transport, model="llama3.1:8b", **kwargs)


class TestChatSession:
    """Tests for ChatSession."""

    @pytest.mark.asyncio
    async def test_send_on_new_thread(self, memory_store):
        """Test a full send: messages, thread id and persistence."""
        transport = FakeTransport(_reply("t1", "<think>greet</think>Hi there"))
        session = _session(transport, store=memory_store)
        updates = []
        threads = []
        session.on_update(updates.append)
        session.on_threads_changed(threads.append)

        final = await session.send("  hello  ")

        assert final is not None
        assert final.text == "Hi there"
        assert final.thinking == "greet"
        assert [(m.sender, m.text) for m in session.messages] == [
            (Sender.USER, "hello"),
            (Sender.ASSISTANT, "Hi there"),
        ]
        assert session.thread_id == "t1"
        assert threads == ["t1"]
        assert not session.is_sending

        stored = await memory_store.get_messages("t1")
        assert [(m.role, m.content, m.thinking) for m in stored] == [
            ("user", "hello", ""),
            ("assistant", "Hi there", "greet"),
        ]

        icons = [u.status.icon for u in updates if isinstance(u, StatusChanged)]
        assert icons[:3] == ["📤", "⚡", "🤖"]
        assert icons[-1] == "✅"

    @pytest.mark.asyncio
    async def test_request_carries_history(self):
        """Test that follow-up requests include prior turns and the thread id."""
        transport = FakeTransport(_reply("t1", "First"), _reply("t1", "Second", is_new_thread=False))
        session = _session(transport)

        await session.send("one")
        await session.send("two")

        second = transport.requests[1]
        assert second.thread_id == "t1"
        assert [(m.role, m.content) for m in second.messages] == [
            ("system", "You are helpful."),
            ("user", "one"),
            ("assistant", "First"),
            ("user", "two"),
        ]

    @pytest.mark.asyncio
    async def test_error_event_adds_notice(self):
        """Test that an error becomes a notice that later requests skip."""
        transport = FakeTransport(
            [StartEvent(thread_id="t1", is_new_thread=True), DeltaEvent(content="part"), ErrorEvent(error="boom")],
        )
        session = _session(transport)

        assert await session.send("hi") is None
        assert session.last_error == "boom"
        assert [m.text for m in session.messages] == ["hi", "Error: boom"]

        request = session.build_request("retry")
        assert [m.content for m in request.messages] == ["You are helpful.", "hi", "retry"]

    @pytest.mark.asyncio
    async def test_tool_call_shows_status(self):
        """Test that tool calls reach the status banner."""
        events = _reply("t1", "You rolled a 4")
        events.insert(1, ToolCallEvent(message="Rolling a 6-sided die"))
        session = _session(FakeTransport(events))
        seen = []
        session.on_update(lambda u: seen.append(u.status.message) if isinstance(u, StatusChanged) else None)

        await session.send("roll a die")
        assert "Rolling a 6-sided die" in seen

    @pytest.mark.asyncio
    async def test_unavailable_model_stops_send(self):
        """Test that a failed status check shows its message and sends nothing."""
        async def checker() -> ModelStatus:
            return ModelStatus(success=False, error="Connection failed", message="🚫 **Ollama Not Running**")

        transport = FakeTransport(_reply("t1", "never"))
        session = _session(transport, status_checker=checker)

        assert await session.send("hi") is None
        assert transport.requests == []
        assert [m.text for m in session.messages] == ["hi", "🚫 **Ollama Not Running**"]
        assert session.last_error == "Connection failed"
        assert session.status.icon == "❌"
        assert session.status.message == "Ollama not available"

    @pytest.mark.asyncio
    async def test_turn_kept_after_failed_status_check(self, memory_store):
        """Test that a turn blocked by the status check is stored with the next one."""
        statuses = [
            ModelStatus(success=False, error="Connection failed", message="Ollama down"),
            ModelStatus(success=True),
        ]

        async def checker() -> ModelStatus:
            return statuses.pop(0)

        transport = FakeTransport(_reply("t1", "Hello"))
        session = _session(transport, status_checker=checker, store=memory_store)

        assert await session.send("first") is None
        assert await session.send("second") is not None

        sent = [(m.role, m.content) for m in transport.requests[0].messages]
        assert ("user", "first") in sent
        stored = await memory_store.get_messages("t1")
        assert [(m.role, m.content) for m in stored] == [
            ("user", "first"),
            ("user", "second"),
            ("assistant", "Hello"),
        ]

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self):
        """Test that whitespace-only input is refused."""
        session = _session(FakeTransport())
        with pytest.raises(ValueError):
            await session.send("   ")

    @pytest.mark.asyncio
    async def test_second_send_rejected_and_cancel(self, memory_store):
        """Test one send at a time, then cancellation cleanup."""
        gate = asyncio.Event()
        transport = FakeTransport(
            [StartEvent(thread_id="t1", is_new_thread=True), DeltaEvent(content="partial")],
            gate=gate,
        )
        session = _session(transport, store=memory_store)
        task = asyncio.create_task(session.send("hi"))
        for _ in range(20):
            await asyncio.sleep(0)
            if len(session.messages) == 2:
                break

        assert session.is_sending
        with pytest.raises(SendInProgressError):
            await session.send("again")

        assert session.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [m.text for m in session.messages] == ["hi"]
        assert session.status is None
        assert not session.is_sending
        assert not session.cancel()
        # The user message was persisted once the server opened the thread
        assert [m.content for m in await memory_store.get_messages("t1")] == ["hi"]

    @pytest.mark.asyncio
    async def test_status_clears_after_delay(self):
        """Test that the success banner clears itself."""
        session = _session(FakeTransport(_reply("t1", "ok")), success_clear_delay=0.01)
        updates = []
        session.on_update(updates.append)

        await session.send("hi")
        assert session.status is not None
        await asyncio.sleep(0.05)

        assert session.status is None
        assert isinstance(updates[-1], StatusCleared)

    @pytest.mark.asyncio
    async def test_new_conversation_resets(self):
        """Test that starting a new chat clears messages and thread."""
        session = _session(FakeTransport(_reply("t1", "ok")))
        updates = []
        session.on_update(updates.append)
        await session.send("hi")

        session.new_conversation()

        assert session.messages == []
        assert session.thread_id is None
        assert updates[-1] == MessagesReset(thread_id=None)
        assert session.build_request("fresh").thread_id is None

    @pytest.mark.asyncio
    async def test_load_conversation_from_store(self, memory_store):
        """Test loading a locally stored thread."""
        await memory_store.replace_messages("t3", [
            StoredMessage(role="user", content="What is 6*7?"),
            StoredMessage(role="assistant", content="<think>multiply</think>42"),
        ])
        session = _session(FakeTransport(), store=memory_store)

        messages = await session.load_conversation("t3")

        assert session.thread_id == "t3"
        assert [(m.text, m.thinking) for m in messages] == [("What is 6*7?", ""), ("42", "multiply")]

    @pytest.mark.asyncio
    async def test_load_conversation_from_server(self, memory_store):
        """Test that server threads are fetched and cached locally."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/conversations/t5":
                return httpx.Response(200, json={
                    "thread_id": "t5",
                    "messages": [
                        {"role": "user", "content": "Roll a die"},
                        {"role": "assistant", "content": "🎲 You rolled a 3!"},
                    ],
                    "total_messages": 2,
                })
            return httpx.Response(404, json={"error": "Conversation not found"})

        conversations = ConversationsClient(
            "http://server.test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        session = _session(FakeTransport(), store=memory_store, conversations=conversations)

        messages = await session.load_conversation("t5")
        assert [m.text for m in messages] == ["Roll a die", "🎲 You rolled a 3!"]
        assert await memory_store.exists("t5")

        with pytest.raises(ConversationNotFoundError):
            await session.load_conversation("missing")

    @pytest.mark.asyncio
    async def test_load_unknown_conversation_without_sources(self):
        """Test the not-found error when nothing can supply the thread."""
        session = _session(FakeTransport())
        with pytest.raises(ConversationNotFoundError):
            await session.load_conversation("nope")

    @pytest.mark.asyncio
    async def test_aclose_releases_transport(self):
        """Test that closing the session closes its transport."""
        transport = FakeTransport()
        session = _session(transport)
        await session.aclose()
        assert transport.closed


class TestStoredToMessage:
    """Tests for stored_to_message."""

    def test_raw_assistant_text_is_split(self):
        """Test that thinking is extracted from raw stored text."""
        message = stored_to_message(StoredMessage(role="assistant", content="<think>why</think>what"))
        assert message.text == "what"
        assert message.thinking == "why"
        assert message.sender == Sender.ASSISTANT

    def test_existing_thinking_kept(self):
        """Test that already-split messages are not re-extracted."""
        message = stored_to_message(StoredMessage(role="assistant", content="answer", thinking="kept"))
        assert (message.text, message.thinking) == ("answer", "kept")
