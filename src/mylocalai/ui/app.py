"""Main Textual TUI application.

Hosts a ChatSession: the session owns the message list and status banner,
the app only redraws from the updates it publishes.
"""

import asyncio
import logging
import threading

import httpx
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, ListView

from ..client import (
    ChatSession,
    ConversationsClient,
    MessagesReset,
    SendInProgressError,
    SessionUpdate,
    StatusCleared,
)
from ..memory import ConversationNotFoundError, ConversationStore, ConversationSummary
from ..streaming import (
    MessageAppended,
    MessageDiscarded,
    MessageFinalized,
    MessageUpserted,
    StatusChanged,
    StreamCompleted,
    StreamFailed,
)
from .config import THREAD_LIST_LIMIT, LogLevel
from .screens import ConfirmationScreen
from .styles import APP_CSS
from .themes import MIDNIGHT
from .widgets import (
    ChatHistoryWidget,
    ChatInputBar,
    ConversationItem,
    ConversationList,
    DebugPanel,
    StatusBanner,
)

logger = logging.getLogger(__name__)


class DebugPanelHandler(logging.Handler):
    """Routes log records from the package into the debug panel."""

    def __init__(self, app: App, panel: DebugPanel) -> None:
        super().__init__(level=logging.DEBUG)
        self._app = app
        self._panel = panel
        self._thread_id = threading.get_ident()
        self.setFormatter(logging.Formatter("%(message)s"))

    @staticmethod
    def component(name: str) -> str:
        """Short component label: ``mylocalai.client.session`` -> ``client``."""
        parts = name.split(".")
        if len(parts) > 1 and parts[0] == "mylocalai":
            return parts[1]
        return parts[0]

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return

        component = self.component(record.name)
        if threading.get_ident() == self._thread_id:
            self._panel.add_entry(component, message, record.levelno)
        else:
            self._app.call_from_thread(self._panel.add_entry, component, message, record.levelno)


class MyLocalAIApp(App):
    """Textual TUI for MyLocalAI chat."""

    CSS = APP_CSS
    TITLE = "MyLocalAI"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit"),
        Binding("ctrl+n", "new_chat", "New Chat", priority=True),
        Binding("ctrl+x", "delete_chat", "Delete Chat", priority=True),
        Binding("ctrl+r", "refresh_threads", "Refresh"),
        Binding("ctrl+d", "toggle_debug", "Debug", priority=True),
        Binding("escape", "cancel_send", "Cancel"),
        Binding("ctrl+y", "copy_last_response", "Copy Response", show=False),
    ]

    def __init__(
        self,
        session: ChatSession,
        model: str,
        conversations: ConversationsClient | None = None,
        store: ConversationStore | None = None,
        log_level: str | None = None,
    ) -> None:
        """Initialize the app.

        Args:
            session: Chat session to host
            model: Model name shown in the subtitle
            conversations: Server client used to list and delete threads
            store: Local store used when no server client is given
            log_level: Debug panel level (debug/info/warning/error), None to hide
        """
        super().__init__()
        self._session = session
        self._model = model
        self._conversations = conversations
        self._store = store
        self._log_level = log_level
        self._log_handler: DebugPanelHandler | None = None

    @property
    def session(self) -> ChatSession:
        return self._session

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal(id="main"):
            yield ConversationList(id="sidebar")
            with Vertical(id="center"):
                yield ChatHistoryWidget(id="chat-history")
                yield DebugPanel(id="debug-panel")
        yield StatusBanner(id="status-banner")
        yield ChatInputBar(id="chat-input-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.register_theme(MIDNIGHT)
        self.theme = MIDNIGHT.name
        source = "server" if self._conversations is not None else (self._store.backend_type if self._store else "none")
        self.sub_title = f"{self._model} | threads: {source}"

        panel = self.query_one("#debug-panel", DebugPanel)
        if self._log_level is not None:
            panel.log_level = LogLevel.from_string(self._log_level)
            panel.show()
        self._log_handler = DebugPanelHandler(self, panel)
        logging.getLogger("mylocalai").addHandler(self._log_handler)
        panel.info("TUI", f"Connected to model {self._model}")

        self._session.on_update(self._on_session_update)
        self._session.on_threads_changed(lambda thread_id: self._load_threads())
        self._load_threads()

    def on_unmount(self) -> None:
        if self._log_handler is not None:
            logging.getLogger("mylocalai").removeHandler(self._log_handler)
            self._log_handler = None

    # Session updates

    def _on_session_update(self, update: SessionUpdate) -> None:
        chat = self.query_one("#chat-history", ChatHistoryWidget)
        banner = self.query_one("#status-banner", StatusBanner)

        if isinstance(update, (MessageAppended, MessageUpserted)):
            chat.upsert(update.message)
        elif isinstance(update, MessageFinalized):
            chat.replace(update.provisional_id, update.message)
        elif isinstance(update, MessageDiscarded):
            chat.remove_message(update.provisional_id)
        elif isinstance(update, MessagesReset):
            chat.reset(self._session.messages)
            self.query_one("#sidebar", ConversationList).highlight_thread(update.thread_id)
        elif isinstance(update, StatusChanged):
            banner.show_status(update.status)
        elif isinstance(update, StatusCleared):
            banner.clear_status()
        elif isinstance(update, StreamFailed):
            self.notify(f"Error: {update.error[:60]}", severity="error", timeout=5)
        elif isinstance(update, StreamCompleted):
            self.query_one("#sidebar", ConversationList).highlight_thread(update.thread_id)

    # Input

    def on_chat_input_bar_submitted(self, event: ChatInputBar.Submitted) -> None:
        if self._session.is_sending:
            self.notify("Still waiting for the previous reply", severity="warning", timeout=2)
            return
        self._send(event.value)

    @work(exclusive=True, group="send")
    async def _send(self, text: str) -> None:
        """Send a message as a background async worker."""
        panel = self.query_one("#debug-panel", DebugPanel)
        panel.info("TUI", f"Sending: '{text[:50]}'")
        try:
            message = await self._session.send(text)
        except SendInProgressError as e:
            self.notify(str(e), severity="warning", timeout=2)
            return
        except asyncio.CancelledError:
            self.notify("Cancelled", severity="warning", timeout=2)
            raise
        except Exception as e:
            logger.exception("Send failed")
            self.notify(f"Error: {str(e)[:50]}", severity="error", timeout=5)
            return

        if message is not None and message.response_time is not None:
            panel.info("TUI", f"Reply in {message.response_time:.2f}s")

    # Threads

    @work(exclusive=True, group="threads")
    async def _load_threads(self) -> None:
        try:
            summaries = await self._fetch_threads()
        except httpx.HTTPError as e:
            logger.warning("Could not load conversations: %s", e)
            self.notify("Could not load conversations", severity="warning", timeout=3)
            return
        sidebar = self.query_one("#sidebar", ConversationList)
        sidebar.set_conversations(summaries, active=self._session.thread_id)

    async def _fetch_threads(self) -> list[ConversationSummary]:
        if self._conversations is not None:
            return await self._conversations.list_conversations(limit=THREAD_LIST_LIMIT)
        if self._store is not None:
            return await self._store.list_conversations(limit=THREAD_LIST_LIMIT)
        return []

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, ConversationItem):
            if event.item.thread_id != self._session.thread_id:
                self._open_thread(event.item.thread_id)
            self.query_one("#chat-input-bar", ChatInputBar).focus_input()

    @work(exclusive=True, group="open")
    async def _open_thread(self, thread_id: str) -> None:
        try:
            messages = await self._session.load_conversation(thread_id)
        except ConversationNotFoundError:
            self.notify("Conversation not found", severity="warning", timeout=3)
            self._load_threads()
            return
        except httpx.HTTPError as e:
            logger.warning("Could not load conversation %s: %s", thread_id, e)
            self.notify("Could not load conversation", severity="error", timeout=3)
            return
        logger.info("Loaded thread %s (%d messages)", thread_id, len(messages))

    @work(exclusive=True, group="delete")
    async def _delete_thread(self, thread_id: str) -> None:
        try:
            if self._conversations is not None:
                await self._conversations.delete_conversation(thread_id)
            if self._store is not None and await self._store.exists(thread_id):
                await self._store.delete_conversation(thread_id)
        except ConversationNotFoundError:
            logger.info("Thread %s was already gone", thread_id)
        except httpx.HTTPError as e:
            logger.warning("Could not delete conversation %s: %s", thread_id, e)
            self.notify("Could not delete conversation", severity="error", timeout=3)
            return

        if self._session.thread_id == thread_id:
            self._session.new_conversation()
        self.notify("Conversation deleted", timeout=2)
        self._load_threads()

    # Actions

    def action_new_chat(self) -> None:
        self._session.new_conversation()
        self.query_one("#chat-input-bar", ChatInputBar).focus_input()
        self.notify("New conversation", timeout=2)

    def action_delete_chat(self) -> None:
        sidebar = self.query_one("#sidebar", ConversationList)
        item = sidebar.highlighted_child
        thread_id = item.thread_id if isinstance(item, ConversationItem) else self._session.thread_id
        if thread_id is None:
            self.notify("No conversation selected", severity="warning", timeout=2)
            return

        def on_answer(confirmed: bool | None) -> None:
            if confirmed:
                self._delete_thread(thread_id)

        self.push_screen(
            ConfirmationScreen("Delete conversation", "This conversation will be removed permanently."),
            on_answer,
        )

    def action_refresh_threads(self) -> None:
        self._load_threads()

    def action_toggle_debug(self) -> None:
        panel = self.query_one("#debug-panel", DebugPanel)
        visible = panel.toggle()
        self.notify(f"Log panel {'shown' if visible else 'hidden'}", timeout=2)

    def action_cancel_send(self) -> None:
        if not self._session.cancel():
            self.notify("Nothing to cancel", timeout=1)

    def action_copy_last_response(self) -> None:
        response = self.query_one("#chat-history", ChatHistoryWidget).get_last_response()
        if response:
            self.copy_to_clipboard(response)
            self.notify("Response copied")
        else:
            self.notify("No response to copy", severity="warning")


async def run_textual_tui(
    session: ChatSession,
    model: str,
    conversations: ConversationsClient | None = None,
    store: ConversationStore | None = None,
    log_level: str | None = None,
) -> None:
    """Run the Textual TUI until the user quits.

    Args:
        session: Chat session to host
        model: Model name shown in the subtitle
        conversations: Server client for listing and deleting threads
        store: Local conversation store
        log_level: Debug panel level, None to start hidden
    """
    app = MyLocalAIApp(
        session=session,
        model=model,
        conversations=conversations,
        store=store,
        log_level=log_level,
    )
    try:
        await app.run_async()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        session.cancel()
