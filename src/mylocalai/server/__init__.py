"""HTTP server: streaming chat relay plus conversation endpoints."""

from .app import build_llm, build_store, create_app
from .relay import ChatRelay
from .schemas import ChatRequest, RequestMessage

__all__ = [
    "ChatRelay",
    "ChatRequest",
    "RequestMessage",
    "build_llm",
    "build_store",
    "create_app",
]
