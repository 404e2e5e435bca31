"""Custom Textual widgets for the TUI.

Hides widget implementation details:
- Input history management
- Conversation list rendering
- Status banner appearance
- Log rendering and level filtering
- Chat message rendering (thinking section, response time)
"""

from datetime import datetime

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.message import Message as TextualMessage
from textual.widgets import Button, Collapsible, Label, ListItem, ListView, Markdown, RichLog, Static, TextArea

from ..memory import ConversationSummary
from ..streaming import Message, Sender, StatusUpdate
from .config import (
    LOG_MAX_MESSAGE_LENGTH,
    LOG_TIMESTAMP_FORMAT,
    MESSAGE_TIME_FORMAT,
    THREAD_PREVIEW_WIDTH,
    LogLevel,
)


class ChatInputBar(Horizontal):
    """Chat input bar with TextArea and Send button."""

    class Submitted(TextualMessage):
        """Message sent when user submits input."""

        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._history: list[str] = []
        self._history_index: int = -1

    def compose(self) -> ComposeResult:
        text_area = TextArea(id="chat-input", show_line_numbers=False)
        text_area.cursor_blink = False
        yield text_area
        yield Button("Send", id="send-btn", variant="success").with_tooltip(
            "Send message (Ctrl+J)"
        )

    def on_mount(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        text_area.focus()
        text_area.highlight_cursor_line = False

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            event.stop()
            self._submit()

    def on_key(self, event) -> None:
        """Handle keyboard shortcuts.

        Terminals do not pass modifiers with Enter, so ctrl+j submits.
        """
        if event.key == "ctrl+j":
            self._submit()
            event.prevent_default()
            event.stop()
        elif event.key == "up" and self._is_cursor_at_start():
            self._navigate_history(-1)
            event.prevent_default()
            event.stop()
        elif event.key == "down" and self._is_cursor_at_end():
            self._navigate_history(1)
            event.prevent_default()
            event.stop()

    def _is_cursor_at_start(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        return text_area.cursor_location == (0, 0)

    def _is_cursor_at_end(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        lines = text_area.text.split("\n")
        return text_area.cursor_location == (len(lines) - 1, len(lines[-1]))

    def _navigate_history(self, direction: int) -> None:
        if not self._history:
            return
        text_area = self.query_one("#chat-input", TextArea)
        if direction < 0:
            if self._history_index == -1:
                self._history_index = len(self._history) - 1
            elif self._history_index > 0:
                self._history_index -= 1
        else:
            if self._history_index == -1:
                return
            if self._history_index < len(self._history) - 1:
                self._history_index += 1
            else:
                self._history_index = -1
                text_area.text = ""
                return
        text_area.text = self._history[self._history_index]

    def _submit(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        value = text_area.text.strip()
        if value:
            if not self._history or self._history[-1] != value:
                self._history.append(value)
            self._history_index = -1
            text_area.text = ""
            self.post_message(self.Submitted(value))

    def focus_input(self) -> None:
        self.query_one("#chat-input", TextArea).focus()


class ConversationItem(ListItem):
    """One thread in the sidebar."""

    def __init__(self, summary: ConversationSummary, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.summary = summary

    @property
    def thread_id(self) -> str:
        return self.summary.thread_id

    def compose(self) -> ComposeResult:
        preview = self.summary.preview
        if len(preview) > THREAD_PREVIEW_WIDTH:
            preview = preview[:THREAD_PREVIEW_WIDTH - 1] + "…"
        updated = self.summary.updated_at.astimezone().strftime("%b %d %H:%M")
        yield Label(preview, classes="thread-preview")
        yield Label(f"{updated} · {self.summary.message_count} msgs", classes="thread-meta")


class ConversationList(ListView):
    """Sidebar listing stored threads, most recently updated first."""

    BORDER_TITLE = "Conversations"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._summaries: list[ConversationSummary] = []

    @property
    def summaries(self) -> list[ConversationSummary]:
        return list(self._summaries)

    def set_conversations(self, summaries: list[ConversationSummary], active: str | None = None) -> None:
        """Replace the listed threads and highlight the active one."""
        self._summaries = list(summaries)
        self.clear()
        self.extend(ConversationItem(s) for s in self._summaries)
        self.border_subtitle = f"{len(self._summaries)} threads"
        self.highlight_thread(active)

    def highlight_thread(self, thread_id: str | None) -> None:
        for index, summary in enumerate(self._summaries):
            if summary.thread_id == thread_id:
                self.index = index
                return
        self.index = None


class StatusBanner(Static):
    """One-line progress banner shown while a message is in flight."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.display = False

    def show_status(self, status: StatusUpdate) -> None:
        suffix = " …" if status.is_loading else ""
        self.update(f"{status.icon} {status.message}{suffix}")
        self.set_class(status.icon == "❌", "-error")
        self.set_class(status.is_loading, "-loading")
        self.display = True

    def clear_status(self) -> None:
        self.update("")
        self.display = False


class DebugPanel(RichLog):
    """Log panel for real-time tracing with level filtering.

    Shows timestamped records from every component. Hidden by default,
    shown with --log-level or toggled with Ctrl+D.
    """

    BORDER_TITLE = "Log"
    BORDER_SUBTITLE = "Hidden"

    LEVEL_COLORS = {
        LogLevel.DEBUG: "dim white",
        LogLevel.INFO: "cyan",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "red",
    }

    COMPONENT_COLORS = {
        "TUI": "cyan",
        "client": "green",
        "server": "bright_blue",
        "agent": "bright_cyan",
        "llm": "magenta",
        "memory": "bright_green",
        "streaming": "bright_yellow",
    }

    def __init__(self, *args, log_level: int = LogLevel.DEBUG, **kwargs) -> None:
        super().__init__(
            *args,
            markup=True,
            highlight=False,
            auto_scroll=True,
            wrap=False,
            **kwargs
        )
        self._log_level = log_level
        self.display = False

    @property
    def log_level(self) -> int:
        return self._log_level

    @log_level.setter
    def log_level(self, level: int) -> None:
        self._log_level = level
        self._update_subtitle()

    def _update_subtitle(self) -> None:
        if self.display:
            self.border_subtitle = f"Level: {LogLevel.name(self._log_level)}"
        else:
            self.border_subtitle = "Hidden"

    def add_entry(self, component: str, message: str, level: int = LogLevel.DEBUG) -> None:
        """Add a log entry if it meets the current level threshold.

        Args:
            component: Component name (TUI, client, agent, llm, ...)
            message: Log message
            level: Log level (LogLevel.DEBUG, INFO, WARNING, ERROR)
        """
        if level < self._log_level:
            return

        if len(message) > LOG_MAX_MESSAGE_LENGTH:
            message = message[:LOG_MAX_MESSAGE_LENGTH] + "…"
        timestamp = datetime.now().strftime(LOG_TIMESTAMP_FORMAT)
        level_name = LogLevel.name(level)
        level_color = self.LEVEL_COLORS[LogLevel.threshold(level)]
        comp_color = self.COMPONENT_COLORS.get(component, "white")

        self.write(
            f"[dim]{timestamp}[/] "
            f"[{level_color}]{level_name:<5}[/] "
            f"[{comp_color}]\\[{component}][/] {message}"
        )

    def debug(self, component: str, message: str) -> None:
        self.add_entry(component, message, LogLevel.DEBUG)

    def info(self, component: str, message: str) -> None:
        self.add_entry(component, message, LogLevel.INFO)

    def warning(self, component: str, message: str) -> None:
        self.add_entry(component, message, LogLevel.WARNING)

    def error(self, component: str, message: str) -> None:
        self.add_entry(component, message, LogLevel.ERROR)

    def show(self) -> None:
        self.display = True
        self._update_subtitle()

    def hide(self) -> None:
        self.display = False
        self._update_subtitle()

    def toggle(self) -> bool:
        """Toggle visibility. Returns True if now visible."""
        if self.display:
            self.hide()
        else:
            self.show()
        return bool(self.display)


class MessageView(Vertical):
    """A single chat message.

    Assistant messages carry a collapsed "Thinking" section when the model
    reasoned, and a response time footer once final.
    """

    def __init__(self, message: Message, *args, **kwargs) -> None:
        role_class = "user-message" if message.sender == Sender.USER else "assistant-message"
        super().__init__(*args, classes=f"chat-message {role_class}", **kwargs)
        self._message = message

    @property
    def message(self) -> Message:
        return self._message

    def compose(self) -> ComposeResult:
        message = self._message
        name = "You" if message.sender == Sender.USER else "Assistant"
        icon = ">" if message.sender == Sender.USER else "<"
        timestamp = message.timestamp.astimezone().strftime(MESSAGE_TIME_FORMAT)
        yield Static(f"{icon} {name} [{timestamp}]", classes="message-header", markup=False)

        thinking = Collapsible(
            Static(message.thinking or "", classes="thinking-content", markup=False),
            title="Thinking",
            collapsed=True,
            classes="thinking",
        )
        thinking.display = bool(message.thinking)
        yield thinking

        if message.sender == Sender.USER:
            yield Static(message.text, classes="message-content", markup=False)
        else:
            yield Markdown(message.text, classes="message-content")

        footer = Static(self._footer_text(), classes="message-footer")
        footer.display = message.response_time is not None
        yield footer

    def _footer_text(self) -> str:
        if self._message.response_time is None:
            return ""
        return f"Response time: {self._message.response_time:.2f}s"

    def set_message(self, message: Message) -> None:
        """Update the rendered content in place."""
        self._message = message
        if not self.is_mounted:
            return

        thinking = self.query_one(".thinking", Collapsible)
        thinking.display = bool(message.thinking)
        thinking.query_one(".thinking-content", Static).update(message.thinking or "")

        content = self.query_one(".message-content")
        if isinstance(content, (Markdown, Static)):
            content.update(message.text)

        footer = self.query_one(".message-footer", Static)
        footer.update(self._footer_text())
        footer.display = message.response_time is not None


class ChatHistoryWidget(VerticalScroll):
    """Scrollable chat history keyed by message id."""

    BORDER_TITLE = "Chat"
    BORDER_SUBTITLE = "New conversation"
    ALLOW_MAXIMIZE = True

    WELCOME = "Ask me anything! Ctrl+J sends, Ctrl+N starts a new chat."

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._views: dict[str, MessageView] = {}

    def on_mount(self) -> None:
        self._show_welcome()

    def _show_welcome(self) -> None:
        if not self._views and not self.query("#welcome"):
            self.mount(Static(self.WELCOME, id="welcome"))

    def _update_subtitle(self) -> None:
        count = len(self._views)
        self.border_subtitle = f"{count} messages" if count else "New conversation"

    def upsert(self, message: Message) -> None:
        """Add a message, or update it in place when already shown."""
        view = self._views.get(message.id)
        if view is not None:
            view.set_message(message)
        else:
            for welcome in self.query("#welcome"):
                welcome.remove()
            view = MessageView(message)
            self._views[message.id] = view
            self.mount(view)
            self._update_subtitle()
        self.scroll_end(animate=False)

    def replace(self, old_id: str, message: Message) -> None:
        """Swap a provisional message for its final form."""
        view = self._views.pop(old_id, None)
        if view is None:
            self.upsert(message)
            return
        self._views[message.id] = view
        view.set_message(message)
        self.scroll_end(animate=False)

    def remove_message(self, message_id: str) -> None:
        view = self._views.pop(message_id, None)
        if view is not None:
            view.remove()
        self._update_subtitle()
        self._show_welcome()

    def reset(self, messages: list[Message]) -> None:
        """Show exactly the given messages."""
        self._views.clear()
        self.query(MessageView).remove()
        if messages:
            self.query("#welcome").remove()
        for message in messages:
            view = MessageView(message)
            self._views[message.id] = view
            self.mount(view)
        self._update_subtitle()
        self._show_welcome()
        self.scroll_end(animate=False)

    def get_last_response(self) -> str | None:
        for view in reversed(list(self._views.values())):
            if view.message.sender == Sender.ASSISTANT:
                return view.message.text
        return None
