"""Terminal UI module for mylocalai.

Provides a Textual-based TUI hosting a ChatSession.

Module structure (each module hides a design decision):
- config.py: Log levels and display constants
- widgets.py: Custom widgets (sidebar, chat history, status banner, log)
- styles.py: CSS styling (layout decisions)
- themes.py: Color palette
- screens.py: Modal dialogs (delete confirmation)
- app.py: Application orchestration (user interaction flow)
"""

from .app import DebugPanelHandler, MyLocalAIApp, run_textual_tui
from .config import LogLevel
from .widgets import (
    ChatHistoryWidget,
    ChatInputBar,
    ConversationList,
    DebugPanel,
    MessageView,
    StatusBanner,
)

__all__ = [
    "ChatHistoryWidget",
    "ChatInputBar",
    "ConversationList",
    "DebugPanel",
    "DebugPanelHandler",
    "LogLevel",
    "MessageView",
    "MyLocalAIApp",
    "StatusBanner",
    "run_textual_tui",
]
