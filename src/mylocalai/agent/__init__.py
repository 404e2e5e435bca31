"""Chat agent module with native tool calling.

Implements:
- Streaming model/tool loop
- Web search, page scraping and dice tools
- Role normalization for upstream message objects
"""

from .chat_agent import ChatAgent
from .data_structures import (
    AgentEvent,
    AgentFinished,
    RoleMessage,
    TextDelta,
    ToolCall,
    ToolCallResult,
    ToolInvocation,
    ToolOutcome,
    UsageSummary,
)
from .messages import normalize_message, normalize_messages, resolve_role
from .tools import (
    BaseTool,
    RollDiceTool,
    ScrapeUrlTool,
    WebSearchTool,
    default_tools,
    describe_tool_call,
)

__all__ = [
    "ChatAgent",
    "AgentEvent",
    "AgentFinished",
    "RoleMessage",
    "TextDelta",
    "ToolCall",
    "ToolCallResult",
    "ToolInvocation",
    "ToolOutcome",
    "UsageSummary",
    "normalize_message",
    "normalize_messages",
    "resolve_role",
    "BaseTool",
    "RollDiceTool",
    "ScrapeUrlTool",
    "WebSearchTool",
    "default_tools",
    "describe_tool_call",
]
