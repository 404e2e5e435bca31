"""FastAPI application: streaming chat relay and conversation endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from .. import __version__
from ..agent import BaseTool, ChatAgent, default_tools
from ..config import Settings
from ..llm import LLMProvider, ModelStatus, check_model_status, create_llm_provider
from ..memory import ConversationNotFoundError, ConversationStore, create_conversation_store
from .relay import ChatRelay
from .schemas import ChatRequest

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

NOT_FOUND = {"error": "Conversation not found"}


def build_llm(settings: Settings) -> LLMProvider:
    """Create the model provider described by the settings."""
    if settings.llm_provider == "openai":
        return create_llm_provider(
            "openai", api_key=settings.openai_api_key, model=settings.model
        )
    return create_llm_provider(
        "ollama", model=settings.model, ollama_url=settings.ollama_url
    )


def build_store(settings: Settings) -> ConversationStore:
    """Create the conversation store described by the settings."""
    if settings.store_backend == "memory":
        return create_conversation_store("memory")
    return create_conversation_store(settings.store_backend, path=settings.store_path)


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


def create_app(
    settings: Settings | None = None,
    llm: LLMProvider | None = None,
    store: ConversationStore | None = None,
    tools: list[BaseTool] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the HTTP application.

    Args:
        settings: Runtime settings (read from the environment when omitted)
        llm: Model provider (built from settings when omitted)
        store: Conversation store (built from settings when omitted)
        tools: Tools offered to the model (the default set when omitted)
        http_client: Client used for model server health checks

    Returns:
        FastAPI application; the lifespan connects the store and closes the
        model client
    """
    settings = settings or Settings.from_env()
    llm = llm or build_llm(settings)
    store = store or build_store(settings)
    if tools is None:
        tools = default_tools(searx_url=settings.searx_url)
    agent = ChatAgent(
        llm, tools=tools, system_prompt=settings.system_prompt(), max_steps=settings.max_steps
    )
    agent.set_debug_callback(
        lambda level, component, message: logger.log(
            logging.getLevelName(level.upper()), "[%s] %s", component, message
        )
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.connect()
        logger.info(
            "MyLocalAI server ready (provider=%s, model=%s, store=%s)",
            settings.llm_provider, settings.model, store.backend_type
        )
        try:
            yield
        finally:
            await store.disconnect()
            await llm.close()

    app = FastAPI(title="MyLocalAI", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.agent = agent

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": _validation_details(exc)},
        )

    @app.post("/api/chat")
    async def chat(body: ChatRequest) -> StreamingResponse:
        relay = ChatRelay(agent, store, body)
        logger.info(
            "Chat request: thread=%s new=%s messages=%d",
            relay.thread_id, relay.is_new_thread, len(body.messages)
        )
        return StreamingResponse(
            relay.stream(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/conversations")
    async def list_conversations(limit: int | None = None) -> dict[str, Any]:
        summaries = await store.list_conversations(limit=limit)
        return {"conversations": [s.model_dump(mode="json") for s in summaries]}

    @app.get("/api/conversations/{thread_id}")
    async def get_conversation(thread_id: str) -> Any:
        try:
            messages = await store.get_messages(thread_id)
        except ConversationNotFoundError:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return {
            "thread_id": thread_id,
            "messages": [m.model_dump(mode="json") for m in messages],
            "total_messages": len(messages),
        }

    @app.delete("/api/conversations/{thread_id}")
    async def delete_conversation(thread_id: str) -> Any:
        try:
            await store.delete_conversation(thread_id)
        except ConversationNotFoundError:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return {"message": "Conversation deleted successfully", "thread_id": thread_id}

    @app.delete("/api/conversations")
    async def clear_conversations() -> dict[str, Any]:
        deleted = await store.clear_all()
        return {"message": "All conversations deleted successfully", "deleted": deleted}

    @app.get("/api/health")
    async def health() -> JSONResponse:
        if settings.llm_provider == "ollama":
            status = await check_model_status(settings.ollama_url, settings.model, client=http_client)
        else:
            status = ModelStatus(success=True, models=[settings.model])

        payload = status.model_dump()
        payload.update(provider=settings.llm_provider, model=settings.model)
        return JSONResponse(status_code=200 if status.success else 503, content=payload)

    return app
