"""Factory functions for CLI commands.

Centralizes creation of settings, stores and HTTP clients so command
implementations only deal with the objects they use.
"""

from pathlib import Path

import typer
from rich.console import Console

from ..client import ChatSession, ChatTransport, ConversationsClient
from ..config import Settings, load_system_prompt
from ..memory import ConversationStore, create_conversation_store

# Default console for output
_console = Console()


def get_settings(console: Console | None = None) -> Settings:
    """Read settings from the environment.

    Raises:
        typer.Exit: If a variable holds an invalid value
    """
    con = console or _console
    try:
        return Settings.from_env()
    except ValueError as e:
        con.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(code=1) from None


def get_local_store(path: Path | None) -> ConversationStore | None:
    """JSON file store for local history, or None when no path is given."""
    if path is None:
        return None
    return create_conversation_store("json", path=path)


def get_conversations_client(server_url: str) -> ConversationsClient:
    return ConversationsClient(server_url)


def get_session(
    server_url: str,
    model: str,
    conversations: ConversationsClient,
    store: ConversationStore | None = None,
    check_model: bool = True,
    system_prompt: str | None = None,
) -> ChatSession:
    """Create a chat session talking to the given server.

    Args:
        server_url: Server base URL
        model: Model name sent with every request
        conversations: Client used to load server-side threads
        store: Optional local store keeping a copy of each thread
        check_model: Check the model server before every send
        system_prompt: Instruction block (defaults to the packaged one)
    """
    return ChatSession(
        transport=ChatTransport(server_url),
        model=model,
        system_prompt=load_system_prompt() if system_prompt is None else system_prompt,
        store=store,
        conversations=conversations,
        status_checker=conversations.health if check_model else None,
    )
