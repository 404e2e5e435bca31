from typing import Any

from .base import LLMProvider
from .providers import OLLAMA_DEFAULT_URL, OpenAIProvider


def create_llm_provider(provider: str, **config: Any) -> LLMProvider:
    """Create an LLM provider instance.

    This factory function hides the instantiation logic for different providers.

    Args:
        provider: Provider type ('ollama', 'openai')
        **config: Provider-specific configuration
            For Ollama:
                - model: str (default: 'llama3.1:8b')
                - ollama_url: str (default: 'http://localhost:11434')
            For OpenAI:
                - api_key: str (required)
                - model: str (default: 'gpt-4o')
                - base_url: str | None

    Returns:
        Initialized LLM provider instance

    Raises:
        ValueError: If provider type is not supported
        TypeError: If required configuration is missing

    Examples:
        >>> provider = create_llm_provider("ollama", model="qwen3:8b")

        >>> provider = create_llm_provider(
        ...     "openai",
        ...     api_key="sk-...",
        ...     model="gpt-4o-mini"
        ... )
    """
    provider_lower = provider.lower()

    if provider_lower == "ollama":
        return OpenAIProvider.for_ollama(
            model=config.pop("model", "llama3.1:8b"),
            ollama_url=config.pop("ollama_url", OLLAMA_DEFAULT_URL),
            **config
        )

    if provider_lower == "openai":
        if not config.get("api_key"):
            raise TypeError("OpenAI provider requires 'api_key' in config")
        return OpenAIProvider(**config)

    raise ValueError(
        f"Unsupported provider: {provider}. "
        f"Supported providers: 'ollama', 'openai'"
    )
