"""Runtime configuration and logging setup.

Settings come from environment variables (optionally loaded from a ``.env``
file). Every setting has a default so the app starts without configuration.
"""

import logging
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from rich.logging import RichHandler

from .llm.providers import OLLAMA_DEFAULT_URL

DEFAULT_MODEL = "llama3.1:8b"
DEFAULT_SEARX_URL = "https://searx.be"
DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "prompts" / "system.txt"


@lru_cache(maxsize=8)
def load_system_prompt(path: Path = DEFAULT_SYSTEM_PROMPT_FILE) -> str:
    """Read the instruction block sent first in every conversation.

    Files are read once per path; call ``load_system_prompt.cache_clear()``
    after editing one.
    """
    return path.read_text(encoding="utf-8").strip()


def _env_int(env: Mapping[str, str], name: str, default: int, low: int, high: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")
    return value


class Settings(BaseModel):
    """Application settings.

    Environment variables:
        LLM_PROVIDER: Model provider (ollama, openai; default: ollama)
        MYLOCALAI_MODEL: Chat model (default: llama3.1:8b)
        OLLAMA_URL: Ollama base URL (default: http://localhost:11434)
        OPENAI_API_KEY: OpenAI API key (openai provider only)
        SEARX_URL: SearX instance used by the web search tool
        MYLOCALAI_STORE: Conversation store backend (sqlite, memory, json)
        MYLOCALAI_STORE_PATH: File used by the sqlite/json store
        MYLOCALAI_HOST / MYLOCALAI_PORT: Server bind address
        MYLOCALAI_SERVER_URL: Server URL used by the terminal clients
        MYLOCALAI_MAX_STEPS: Maximum model turns per message (1-50)
        MYLOCALAI_LOG_LEVEL: Logging level (default: info)
        MYLOCALAI_SYSTEM_PROMPT: Text file holding the system prompt
            (default: the packaged prompts/system.txt)
    """

    llm_provider: Literal["ollama", "openai"] = "ollama"
    model: str = DEFAULT_MODEL
    ollama_url: str = OLLAMA_DEFAULT_URL
    openai_api_key: str | None = None
    searx_url: str = DEFAULT_SEARX_URL
    store_backend: Literal["sqlite", "memory", "json"] = "sqlite"
    store_path: Path = Path("storage/conversations.db")
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    server_url: str = "http://127.0.0.1:8000"
    max_steps: int = Field(default=8, ge=1, le=50)
    log_level: str = "info"
    system_prompt_file: Path = DEFAULT_SYSTEM_PROMPT_FILE

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        dotenv: bool = True
    ) -> "Settings":
        """Build settings from the environment.

        Args:
            environ: Mapping to read instead of ``os.environ``
            dotenv: Load a ``.env`` file into ``os.environ`` first

        Raises:
            ValueError: If a variable holds an invalid value
        """
        if dotenv and environ is None:
            load_dotenv()
        env = os.environ if environ is None else environ

        provider = env.get("LLM_PROVIDER", "ollama").strip().lower()
        if provider not in ("ollama", "openai"):
            raise ValueError(f"LLM_PROVIDER must be 'ollama' or 'openai', got {provider!r}")

        store = env.get("MYLOCALAI_STORE", "sqlite").strip().lower()
        if store not in ("sqlite", "memory", "json"):
            raise ValueError(f"MYLOCALAI_STORE must be sqlite, memory or json, got {store!r}")

        prompt_file = env.get("MYLOCALAI_SYSTEM_PROMPT", "").strip()
        if prompt_file and not Path(prompt_file).is_file():
            raise ValueError(f"MYLOCALAI_SYSTEM_PROMPT must name an existing file, got {prompt_file!r}")

        return cls(
            llm_provider=provider,
            model=env.get("MYLOCALAI_MODEL", DEFAULT_MODEL),
            ollama_url=env.get("OLLAMA_URL", OLLAMA_DEFAULT_URL),
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            searx_url=env.get("SEARX_URL", DEFAULT_SEARX_URL),
            store_backend=store,
            store_path=Path(env.get("MYLOCALAI_STORE_PATH", "storage/conversations.db")),
            host=env.get("MYLOCALAI_HOST", "127.0.0.1"),
            port=_env_int(env, "MYLOCALAI_PORT", 8000, 1, 65535),
            server_url=env.get("MYLOCALAI_SERVER_URL", "http://127.0.0.1:8000"),
            max_steps=_env_int(env, "MYLOCALAI_MAX_STEPS", 8, 1, 50),
            log_level=env.get("MYLOCALAI_LOG_LEVEL", "info").lower(),
            system_prompt_file=Path(prompt_file) if prompt_file else DEFAULT_SYSTEM_PROMPT_FILE,
        )

    def system_prompt(self) -> str:
        """The configured system prompt text."""
        return load_system_prompt(self.system_prompt_file)


def setup_logging(level: str = "info") -> None:
    """Route log records to a Rich handler on the root logger.

    Library modules only create loggers; entry points call this once.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(
        level=numeric,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
