"""Integration tests for the HTTP server, driven in-process over ASGI."""
import httpx
import pytest
from conftest import ScriptedTurn

from mylocalai.agent import ChatAgent, RollDiceTool
from mylocalai.config import Settings
from mylocalai.llm import ToolCallRequest
from mylocalai.memory import StoredMessage
from mylocalai.server import ChatRelay, ChatRequest, create_app
from mylocalai.streaming import (
    CompleteEvent,
    DeltaEvent,
    ErrorEvent,
    FrameParser,
    StartEvent,
    ToolCallEvent,
    parse_event,
)


def _settings(**overrides) -> Settings:
    values = {"store_backend": "memory", "ollama_url": "http://ollama.test", "model": "llama3.1:8b"}
    values.update(overrides)
    return Settings(**values)


def _ollama(models: list[str] | None = None, status: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(status, json={"models": [{"name": name} for name in models or []]})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def _events(body: str) -> list:
    parser = FrameParser()
    payloads = parser.feed(body) + parser.flush()
    return [parse_event(payload) for payload in payloads]


def _chat_body(*messages: tuple[str, str], thread_id: str | None = None) -> dict:
    body = {"model": "llama3.1:8b", "messages": [{"role": r, "content": c} for r, c in messages]}
    if thread_id is not None:
        body["thread_id"] = thread_id
    return body


class TestChatEndpoint:
    """Tests for POST /api/chat."""

    @pytest.mark.asyncio
    async def test_new_thread_stream(self, fake_llm_factory, memory_store):
        """Test the frame sequence and persistence of a new thread."""
        llm = fake_llm_factory(ScriptedTurn(["Hello", ", world"]))
        app = create_app(_settings(), llm=llm, store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=_chat_body(("system", "Be brief."), ("user", "Hi")))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = _events(response.text)
        assert isinstance(events[0], StartEvent)
        assert events[0].is_new_thread is True
        thread_id = events[0].thread_id
        assert [e.content for e in events[1:3]] == ["Hello", ", world"]
        complete = events[-1]
        assert isinstance(complete, CompleteEvent)
        assert complete.thread_id == thread_id
        assert complete.is_new_thread is True
        assert complete.total_messages == 2
        assert complete.final_assistant_text() == "Hello, world"

        stored = await memory_store.get_messages(thread_id)
        assert [(m.role, m.content) for m in stored] == [("user", "Hi"), ("assistant", "Hello, world")]

        sent = llm.requests[0]["messages"]
        assert sent[0].role == "system"
        assert sent[0].content == "Be brief."
        assert sent[-1].content == "Hi"
        assert sent[-1].role == "user"

    @pytest.mark.asyncio
    async def test_known_thread_appends(self, fake_llm_factory, memory_store):
        """Test that a known thread gets the new turn appended."""
        await memory_store.replace_messages("t1", [
            StoredMessage(role="user", content="First"),
            StoredMessage(role="assistant", content="<think>hmm</think>Reply one"),
        ])
        llm = fake_llm_factory(ScriptedTurn(["Reply two"]))
        app = create_app(_settings(), llm=llm, store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=_chat_body(
                ("user", "First"), ("assistant", "Reply one"), ("user", "Second"), thread_id="t1"
            ))

        events = _events(response.text)
        assert events[0] == StartEvent(thread_id="t1", is_new_thread=False)
        assert events[-1].is_new_thread is False
        assert events[-1].total_messages == 4

        stored = await memory_store.get_messages("t1")
        assert [m.content for m in stored] == ["First", "<think>hmm</think>Reply one", "Second", "Reply two"]

    @pytest.mark.asyncio
    async def test_unknown_thread_id_uses_request_history(self, fake_llm_factory, memory_store):
        """Test that an unknown thread id is seeded from the request."""
        llm = fake_llm_factory(ScriptedTurn(["ok"]))
        app = create_app(_settings(), llm=llm, store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=_chat_body(
                ("user", "a"), ("assistant", "b"), ("user", "c"), thread_id="fresh"
            ))

        events = _events(response.text)
        assert events[0].is_new_thread is False
        stored = await memory_store.get_messages("fresh")
        assert [m.content for m in stored] == ["a", "b", "c", "ok"]

    @pytest.mark.asyncio
    async def test_tool_call_frame(self, fake_llm_factory, memory_store):
        """Test that tool invocations are reported as tool_call frames."""
        llm = fake_llm_factory(
            ScriptedTurn([], tool_calls=[ToolCallRequest(id="c1", name="roll_dice", arguments='{"sides": 6}')]),
            ScriptedTurn(["You got it."]),
        )
        app = create_app(_settings(), llm=llm, store=memory_store, tools=[RollDiceTool()])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=_chat_body(("user", "Roll a die")))

        events = _events(response.text)
        assert [type(e) for e in events] == [StartEvent, ToolCallEvent, DeltaEvent, CompleteEvent]
        assert events[1].message == "Rolling a 6-sided die"
        assert llm.requests[0]["tools"][0]["function"]["name"] == "roll_dice"

    @pytest.mark.asyncio
    async def test_llm_failure_becomes_error_frame(self, fake_llm_factory, memory_store):
        """Test that a failing model ends the stream with an error frame."""
        llm = fake_llm_factory(error=RuntimeError("model exploded"))
        app = create_app(_settings(), llm=llm, store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=_chat_body(("user", "Hi")))

        assert response.status_code == 200
        events = _events(response.text)
        assert isinstance(events[0], StartEvent)
        assert events[-1] == ErrorEvent(error="model exploded")
        assert await memory_store.list_conversations() == []

    @pytest.mark.asyncio
    async def test_last_message_must_be_user(self, fake_llm_factory, memory_store):
        """Test that a request ending with an assistant turn is refused in-stream."""
        app = create_app(_settings(), llm=fake_llm_factory(), store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=_chat_body(("assistant", "I spoke last")))

        events = _events(response.text)
        assert len(events) == 2
        assert isinstance(events[1], ErrorEvent)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"messages": [{"role": "user", "content": "Hi"}]},
        {"model": "m", "messages": []},
        {"model": "m", "messages": [{"role": "user", "content": ""}]},
        {"model": "m", "messages": [{"role": "robot", "content": "Hi"}]},
        {"model": "", "messages": [{"role": "user", "content": "Hi"}]},
    ])
    async def test_invalid_body(self, fake_llm_factory, memory_store, body):
        """Test that malformed bodies are rejected with 400 before streaming."""
        llm = fake_llm_factory()
        app = create_app(_settings(), llm=llm, store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.post("/api/chat", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"
        assert response.json()["details"]
        assert llm.requests == []


class TestConversationEndpoints:
    """Tests for the conversation listing endpoints."""

    @pytest.mark.asyncio
    async def test_list_get_delete(self, fake_llm_factory, memory_store):
        """Test listing, fetching and deleting threads."""
        await memory_store.append_message("a", StoredMessage(role="user", content="alpha"))
        await memory_store.append_message("b", StoredMessage(role="user", content="beta"))
        app = create_app(_settings(), llm=fake_llm_factory(), store=memory_store, tools=[])

        async with _client(app) as client:
            listing = (await client.get("/api/conversations")).json()["conversations"]
            assert [c["thread_id"] for c in listing] == ["b", "a"]
            assert listing[0]["preview"] == "beta"

            limited = (await client.get("/api/conversations", params={"limit": 1})).json()
            assert len(limited["conversations"]) == 1

            detail = (await client.get("/api/conversations/a")).json()
            assert detail["thread_id"] == "a"
            assert detail["total_messages"] == 1
            assert detail["messages"][0]["content"] == "alpha"

            deleted = await client.delete("/api/conversations/a")
            assert deleted.status_code == 200
            assert deleted.json()["thread_id"] == "a"

            missing = await client.get("/api/conversations/a")
            assert missing.status_code == 404
            assert missing.json() == {"error": "Conversation not found"}

            again = await client.delete("/api/conversations/a")
            assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_clear_all(self, fake_llm_factory, memory_store):
        """Test deleting every thread."""
        await memory_store.append_message("a", StoredMessage(role="user", content="x"))
        await memory_store.append_message("b", StoredMessage(role="user", content="y"))
        app = create_app(_settings(), llm=fake_llm_factory(), store=memory_store, tools=[])

        async with _client(app) as client:
            response = await client.delete("/api/conversations")
            assert response.json()["deleted"] == 2
            assert (await client.get("/api/conversations")).json() == {"conversations": []}


class TestHealthEndpoint:
    """Tests for GET /api/health."""

    @pytest.mark.asyncio
    async def test_model_available(self, fake_llm_factory, memory_store):
        """Test 200 when the model is installed."""
        app = create_app(
            _settings(), llm=fake_llm_factory(), store=memory_store, tools=[],
            http_client=_ollama(["llama3.1:8b", "qwen3:8b"]),
        )
        async with _client(app) as client:
            response = await client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["models"] == ["llama3.1:8b", "qwen3:8b"]
        assert body["provider"] == "ollama"

    @pytest.mark.asyncio
    async def test_model_missing(self, fake_llm_factory, memory_store):
        """Test 503 when the model is not installed."""
        app = create_app(
            _settings(), llm=fake_llm_factory(), store=memory_store, tools=[],
            http_client=_ollama(["mistral:7b"]),
        )
        async with _client(app) as client:
            response = await client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["error"] == "Model not found"

    @pytest.mark.asyncio
    async def test_openai_provider_skips_model_check(self, fake_llm_factory, memory_store):
        """Test that hosted providers report ready without probing Ollama."""
        app = create_app(
            _settings(llm_provider="openai"), llm=fake_llm_factory(), store=memory_store, tools=[],
        )
        async with _client(app) as client:
            response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["models"] == ["llama3.1:8b"]


class TestChatRelay:
    """Tests for ChatRelay outside the HTTP layer."""

    def _relay(self, llm, store, thread_id=None):
        request = ChatRequest.model_validate(_chat_body(("user", "Hi"), thread_id=thread_id))
        return ChatRelay(ChatAgent(llm), store, request)

    def test_new_thread_gets_minted_id(self, fake_llm_factory, memory_store):
        """Test that omitting the thread id mints one."""
        relay = self._relay(fake_llm_factory(), memory_store)
        assert relay.is_new_thread
        assert relay.thread_id

        known = self._relay(fake_llm_factory(), memory_store, thread_id="t1")
        assert not known.is_new_thread
        assert known.thread_id == "t1"

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_llm_factory, memory_store):
        """Test that a closed relay writes nothing more."""
        relay = self._relay(fake_llm_factory(ScriptedTurn(["x"])), memory_store)
        await relay.close()
        await relay.close()

        assert relay.closed
        assert [frame async for frame in relay.stream()] == []

    @pytest.mark.asyncio
    async def test_stream_closes_relay(self, fake_llm_factory, memory_store):
        """Test that the relay is closed once the turn ends."""
        relay = self._relay(fake_llm_factory(ScriptedTurn(["x"])), memory_store)
        frames = [frame async for frame in relay.stream()]

        assert frames[0].startswith("data: ")
        assert relay.closed
