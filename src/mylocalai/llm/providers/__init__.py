from .openai import OLLAMA_DEFAULT_URL, OpenAIProvider

__all__ = ["OLLAMA_DEFAULT_URL", "OpenAIProvider"]
