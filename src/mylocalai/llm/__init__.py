from .base import LLMProvider
from .factory import create_llm_provider
from .health import ModelStatus, check_model_status
from .models import ChatMessage, LLMResponse, StreamingResponse, ToolCallRequest
from .providers import OpenAIProvider

__all__ = [
    "LLMProvider",
    "create_llm_provider",
    "ChatMessage",
    "LLMResponse",
    "ModelStatus",
    "OpenAIProvider",
    "StreamingResponse",
    "ToolCallRequest",
    "check_model_status",
]
