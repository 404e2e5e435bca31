"""Tools the chat agent can call."""

import json
import random
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Tag

from .data_structures import ToolCall, ToolCallResult

DEFAULT_SEARX_URL = "https://searx.be"
MAX_SEARCH_RESULTS = 10
MAX_SCRAPE_CHARS = 8000

# Removed before reading page text
_HIDDEN_TAGS = ["script", "style", "noscript", "template", "svg", "title"]


def _tag_text(tag: Tag | None) -> str:
    """Visible text of a tag with runs of whitespace collapsed."""
    if tag is None:
        return ""
    return " ".join(tag.get_text(" ", strip=True).split())


class BaseTool(ABC):
    """Abstract base class for tools."""

    def __init__(self) -> None:
        self._debug_callback: Any | None = None

    def set_debug_callback(self, callback: Any) -> None:
        """Set debug callback for logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback

    def _debug(self, level: str, component: str, message: str) -> None:
        """Send debug message if callback is set."""
        if self._debug_callback:
            self._debug_callback(level, component, message)

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description for the LLM."""

    @property
    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """Get the JSON schema for tool parameters."""

    @abstractmethod
    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Execute the tool call.

        Args:
            tool_call: The tool call to execute

        Returns:
            ToolCallResult with the execution result
        """

    def to_llm_spec(self) -> dict[str, Any]:
        """Convert tool to an OpenAI-style function tool specification."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }

    def _error(self, tool_call: ToolCall, message: str) -> ToolCallResult:
        return ToolCallResult(tool_call_id=tool_call.id_, content=message, error=True)


class RollDiceTool(BaseTool):
    """Rolls an N-sided die."""

    def __init__(self, rng: random.Random | None = None):
        super().__init__()
        self._rng = rng or random.Random()

    @property
    def name(self) -> str:
        return "roll_dice"

    @property
    def description(self) -> str:
        return "Rolls an N-sided die"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "sides": {
                    "type": "integer",
                    "minimum": 2,
                    "description": "Number of sides on the die"
                }
            },
            "required": ["sides"]
        }

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        sides = tool_call.arguments.get("sides")
        if isinstance(sides, str) and sides.strip().isdigit():
            sides = int(sides)
        if not isinstance(sides, int) or isinstance(sides, bool) or sides < 2:
            return self._error(tool_call, "Error: 'sides' must be an integer of at least 2")

        value = self._rng.randint(1, sides)
        self._debug("info", "Dice", f"Rolled d{sides}: {value}")
        return ToolCallResult(
            tool_call_id=tool_call.id_,
            content=f"🎲 You rolled a {value}!"
        )


class WebSearchTool(BaseTool):
    """Searches the web through a SearX instance and returns result URLs."""

    def __init__(
        self,
        searx_url: str = DEFAULT_SEARX_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 20.0
    ):
        """Initialize the search tool.

        Args:
            searx_url: Base URL of the SearX/SearXNG instance
            client: Optional shared HTTP client
            timeout: Request timeout in seconds
        """
        super().__init__()
        self._searx_url = searx_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "search_searx_for_url"

    @property
    def description(self) -> str:
        return "Search the web using SearX metasearch engine to get relevant URLs"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query"
                }
            },
            "required": ["query"]
        }

    @staticmethod
    def parse_results(page: str) -> list[dict[str, str]]:
        """Extract result entries from a SearX HTML results page."""
        soup = BeautifulSoup(page, "html.parser")
        results = []
        for article in soup.select("article.result"):
            link = article.select_one("h3 a[href]")
            if link is None:
                continue
            results.append({
                "url": link["href"].strip(),
                "title": _tag_text(link),
                "content": _tag_text(article.select_one("p.content")),
            })
            if len(results) >= MAX_SEARCH_RESULTS:
                break
        return results

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        query = str(tool_call.arguments.get("query", "")).strip()
        if not query:
            return self._error(tool_call, "Error: query parameter is required")

        self._debug("info", "Search", f"Query: '{query[:50]}'")
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await client.get(
                f"{self._searx_url}/search",
                params={"q": query, "format": "html"},
                headers={"User-Agent": "MyLocalAI-SearX-Tool/1.0"},
            )
            if response.status_code >= 400:
                return self._error(
                    tool_call, f"❌ Search failed: SearX search failed: {response.status_code}"
                )
            results = self.parse_results(response.text)
        except httpx.HTTPError as e:
            return self._error(tool_call, f"❌ Search failed: {e}")
        finally:
            if self._client is None:
                await client.aclose()

        self._debug("info", "Search", f"{len(results)} results")
        return ToolCallResult(
            tool_call_id=tool_call.id_,
            content=json.dumps({
                "query": query,
                "count": len(results),
                "urls": [r["url"] for r in results],
            }, indent=2)
        )


def extract_page_text(page: str) -> tuple[str, str]:
    """Return the title and visible body text of an HTML page."""
    soup = BeautifulSoup(page, "html.parser")
    title = _tag_text(soup.title)

    for tag in soup.find_all(_HIDDEN_TAGS):
        tag.decompose()
    return title, _tag_text(soup.body or soup)


class ScrapeUrlTool(BaseTool):
    """Fetches a web page and returns its title and visible text."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_chars: int = MAX_SCRAPE_CHARS
    ):
        super().__init__()
        self._client = client
        self._max_chars = max_chars

    @property
    def name(self) -> str:
        return "scrape_url"

    @property
    def description(self) -> str:
        return "Scrape the readable text content from a URL"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The http(s) URL to fetch"
                },
                "timeout": {
                    "type": "number",
                    "description": "Timeout in seconds (default: 60)"
                }
            },
            "required": ["url"]
        }

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        url = str(tool_call.arguments.get("url", "")).strip()
        if urlparse(url).scheme not in ("http", "https"):
            return self._error(tool_call, f"❌ Scrape failed: invalid URL '{url}'")

        timeout = float(tool_call.arguments.get("timeout") or 60)
        self._debug("info", "Scrape", f"Fetching {url}")
        client = self._client or httpx.AsyncClient(follow_redirects=True)
        try:
            response = await client.get(
                url,
                timeout=timeout,
                headers={"User-Agent": "Mozilla/5.0 (compatible; MyLocalAI/1.0)"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            return self._error(tool_call, f"❌ Scrape failed: {e}")
        finally:
            if self._client is None:
                await client.aclose()

        title, content = extract_page_text(response.text)
        truncated = len(content) > self._max_chars
        return ToolCallResult(
            tool_call_id=tool_call.id_,
            content=json.dumps({
                "url": str(response.url),
                "status": response.status_code,
                "title": title,
                "content": content[:self._max_chars],
                "truncated": truncated,
            }, indent=2, ensure_ascii=False)
        )


def describe_tool_call(tool_name: str, arguments: dict[str, Any]) -> str:
    """Human-readable status text for a tool invocation."""
    if tool_name == "roll_dice":
        return f"Rolling a {arguments.get('sides', '?')}-sided die"
    if tool_name == "search_searx_for_url":
        return f"Searching the web for \"{arguments.get('query', '')}\""
    if tool_name == "scrape_url":
        return f"Reading {arguments.get('url', 'a web page')}"

    if not arguments:
        return f"Using tool {tool_name}"
    rendered = ", ".join(f"{key}={value!r}" for key, value in arguments.items())
    if len(rendered) > 80:
        rendered = rendered[:77] + "..."
    return f"Using tool {tool_name} ({rendered})"


def default_tools(searx_url: str = DEFAULT_SEARX_URL) -> list[BaseTool]:
    """The tool set served to the model by default."""
    return [RollDiceTool(), WebSearchTool(searx_url=searx_url), ScrapeUrlTool()]
