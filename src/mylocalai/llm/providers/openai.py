import logging
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from ..base import LLMProvider
from ..models import ChatMessage, LLMResponse, StreamingResponse, ToolCallRequest

logger = logging.getLogger(__name__)

OLLAMA_DEFAULT_URL = "http://localhost:11434"


def _to_openai_message(message: ChatMessage) -> dict[str, Any]:
    """Convert a chat message to the Chat Completions wire format."""
    payload: dict[str, Any] = {"role": message.role, "content": message.content}

    if message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments or "{}"},
            }
            for call in message.tool_calls
        ]
    if message.tool_call_id is not None:
        payload["tool_call_id"] = message.tool_call_id

    return payload


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible LLM provider implementation.

    Serves both the hosted OpenAI API and local runtimes that expose the
    same API (Ollama at ``/v1``).

    Hidden design decisions:
    - API client initialization
    - Message format conversion
    - Streamed tool-call fragment merging
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        organization: str | None = None,
        **client_kwargs: Any
    ):
        """Initialize OpenAI-compatible provider.

        Args:
            api_key: API key (any non-empty string for local runtimes)
            model: Default model to use
            base_url: Optional custom API base URL
            organization: Optional organization ID
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            **client_kwargs
        )

    @classmethod
    def for_ollama(
        cls,
        model: str = "llama3.1:8b",
        ollama_url: str = OLLAMA_DEFAULT_URL,
        **client_kwargs: Any
    ) -> "OpenAIProvider":
        """Create a provider bound to a local Ollama server.

        Ollama ignores the key but the client requires one.
        """
        return cls(
            api_key="ollama",
            model=model,
            base_url=f"{ollama_url.rstrip('/')}/v1",
            **client_kwargs
        )

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def _request_params(
        self,
        messages: list[ChatMessage],
        model: str | None,
        temperature: float,
        max_tokens: int | None,
        tools: list[dict[str, Any]] | None,
        **kwargs: Any
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model or self._model,
            "messages": [_to_openai_message(msg) for msg in messages],
            "temperature": temperature,
            **kwargs
        }
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        if tools:
            params["tools"] = tools
        return params

    async def chat_completion(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """Generate a chat completion.

        Args:
            messages: Conversation history
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            tools: Function tool specifications
            **kwargs: Additional OpenAI-specific parameters

        Returns:
            LLMResponse with generated content and any tool calls
        """
        params = self._request_params(messages, model, temperature, max_tokens, tools, **kwargs)
        completion = await self._client.chat.completions.create(**params)

        usage = None
        if completion.usage:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens
            }

        message = completion.choices[0].message
        tool_calls = [
            ToolCallRequest(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "",
            )
            for call in (message.tool_calls or [])
        ]

        return LLMResponse(
            content=message.content or "",
            model=completion.model,
            usage=usage,
            tool_calls=tool_calls
        )

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any
    ) -> StreamingResponse:
        """Generate a streaming chat completion.

        Args:
            messages: Conversation history
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            tools: Function tool specifications
            **kwargs: Additional OpenAI-specific parameters

        Returns:
            StreamingResponse that yields text chunks and captures usage
            and tool calls
        """
        params = self._request_params(messages, model, temperature, max_tokens, tools, **kwargs)
        response = StreamingResponse()
        return response.attach(self._chat_stream_generator(response, params))

    async def _chat_stream_generator(
        self,
        response: StreamingResponse,
        params: dict[str, Any],
    ) -> AsyncIterator[str]:
        """Internal generator for Chat Completions streaming.

        Tool calls arrive as fragments keyed by index: the first fragment
        carries id and name, later ones append to the arguments string.
        """
        stream = await self._client.chat.completions.create(
            **params,
            stream=True,
            stream_options={"include_usage": True},
        )

        pending: dict[int, dict[str, str]] = {}
        try:
            async for chunk in stream:
                if chunk.usage is not None:
                    response.set_usage({
                        "prompt_tokens": chunk.usage.prompt_tokens,
                        "completion_tokens": chunk.usage.completion_tokens,
                        "total_tokens": chunk.usage.total_tokens,
                    })
                if not chunk.choices:
                    continue

                delta = chunk.choices[0].delta
                for fragment in delta.tool_calls or []:
                    entry = pending.setdefault(
                        fragment.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if fragment.id:
                        entry["id"] = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            entry["name"] = fragment.function.name
                        if fragment.function.arguments:
                            entry["arguments"] += fragment.function.arguments

                if delta.content:
                    yield delta.content
        finally:
            response.set_tool_calls([
                ToolCallRequest(
                    id=entry["id"] or f"call_{index}",
                    name=entry["name"],
                    arguments=entry["arguments"],
                )
                for index, entry in sorted(pending.items())
                if entry["name"]
            ])
            if pending:
                logger.debug("Model requested %d tool call(s)", len(pending))

    async def close(self) -> None:
        """Close the OpenAI client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()
