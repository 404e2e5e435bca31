"""Reachability and model availability checks for the local model server."""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ModelStatus(BaseModel):
    """Outcome of probing the local model server.

    Attributes:
        success: Server reachable and the required model installed
        models: Model names reported by the server
        error: Short error category when unsuccessful
        message: User-facing markdown explanation when unsuccessful
    """

    success: bool
    models: list[str] = Field(default_factory=list)
    error: str | None = None
    message: str | None = None


def _model_family(model: str) -> str:
    return model.split(":", 1)[0]


def _not_running_message(ollama_url: str, model: str) -> str:
    return f"""🚫 **Ollama Not Running**

Please start Ollama first:

```bash
ollama serve
```

**Then install the required model:**
```bash
ollama pull {model}
```

Make sure Ollama is running on {ollama_url}"""


def _missing_model_message(model: str, available: list[str]) -> str:
    listed = ", ".join(available) or "none"
    return f"""🤖 **Model Not Available**

The required model ({model}) is not installed.

**Install the model:**
```bash
ollama pull {model}
```

Available models: {listed}"""


async def check_model_status(
    ollama_url: str,
    required_model: str,
    client: httpx.AsyncClient | None = None,
    timeout: float = 5.0
) -> ModelStatus:
    """Check that Ollama is reachable and has the required model.

    A model counts as installed when its name matches exactly or shares the
    family prefix (``llama3.1`` for ``llama3.1:8b``).

    Args:
        ollama_url: Base URL of the Ollama server
        required_model: Model the app is configured to use
        client: Optional HTTP client (tests inject a mock transport)
        timeout: Request timeout in seconds

    Returns:
        ModelStatus describing the outcome; never raises for HTTP failures
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    url = f"{ollama_url.rstrip('/')}/api/tags"

    try:
        response = await http.get(url)
        response.raise_for_status()
        data: dict[str, Any] = response.json()
    except httpx.TransportError as e:
        logger.info("Model server unreachable at %s: %s", url, e)
        return ModelStatus(
            success=False,
            error="Connection failed",
            message=_not_running_message(ollama_url, required_model),
        )
    except (httpx.HTTPStatusError, ValueError) as e:
        logger.warning("Model server check failed: %s", e)
        return ModelStatus(
            success=False,
            error="Ollama error",
            message=f"❌ **Ollama Error**\n\n{e}\n\nPlease ensure Ollama is properly installed and running.",
        )
    finally:
        if owns_client:
            await http.aclose()

    models = [m.get("name", "") for m in data.get("models", []) if isinstance(m, dict)]
    family = _model_family(required_model)
    if not any(name == required_model or name.startswith(family) for name in models):
        return ModelStatus(
            success=False,
            models=models,
            error="Model not found",
            message=_missing_model_message(required_model, models),
        )

    return ModelStatus(success=True, models=models)
