"""Main CLI application using Typer."""
import asyncio
import logging
from pathlib import Path

import httpx
import typer
from dotenv import load_dotenv
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..client import SessionUpdate, StatusCleared, stored_to_message
from ..config import setup_logging
from ..memory import ConversationNotFoundError
from ..streaming import Message, MessageUpserted, StatusChanged, StatusUpdate, StreamFailed
from .providers import get_conversations_client, get_local_store, get_session, get_settings

# Load environment variables
load_dotenv()

app = typer.Typer(
    name="mylocalai",
    help="Local-first AI chat: streaming server, terminal UI and conversation tools",
    no_args_is_help=True,
    add_completion=True,
)

conversations_app = typer.Typer(help="Manage stored conversations", no_args_is_help=True)
app.add_typer(conversations_app, name="conversations")

# Console for rich output
console = Console()

SERVER_OPTION = typer.Option(None, "--server", "-s", help="Server URL (default: MYLOCALAI_SERVER_URL)")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: MYLOCALAI_HOST)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (default: MYLOCALAI_PORT)"),
    log_level: str | None = typer.Option(None, "--log-level", "-l", help="debug, info, warning or error"),
):
    """Run the streaming chat server."""
    import uvicorn

    from ..server import create_app

    settings = get_settings(console)
    level = log_level or settings.log_level
    try:
        setup_logging(level)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(Panel.fit(
        f"[bold]MyLocalAI[/bold] on http://{host or settings.host}:{port or settings.port}\n"
        f"[dim]provider={settings.llm_provider} model={settings.model} store={settings.store_backend}[/dim]",
        border_style="cyan",
    ))
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=level,
        log_config=None,
    )


@app.command()
def chat(
    server: str | None = SERVER_OPTION,
    model: str | None = typer.Option(None, "--model", "-m", help="Model name (default: MYLOCALAI_MODEL)"),
    history: Path | None = typer.Option(
        None, "--history", help="JSON file keeping a local copy of every thread"
    ),
    check_model: bool = typer.Option(True, "--check/--no-check", help="Check the model server before each send"),
    log_level: str | None = typer.Option(
        None, "--log-level", "-l", help="Show the log panel at this level (debug, info, warning, error)"
    ),
):
    """Open the terminal chat UI."""
    from ..ui import run_textual_tui

    settings = get_settings(console)
    server_url = server or settings.server_url
    model_name = model or settings.model

    # Records go to the TUI log panel, not the terminal
    logging.getLogger("mylocalai").setLevel(logging.DEBUG)

    async def _chat():
        conversations = get_conversations_client(server_url)
        store = get_local_store(history)
        session = get_session(
            server_url, model_name, conversations,
            store=store, check_model=check_model, system_prompt=settings.system_prompt(),
        )
        try:
            if store is not None:
                await store.connect()
            await run_textual_tui(
                session,
                model=model_name,
                conversations=conversations,
                store=store,
                log_level=log_level,
            )
        finally:
            await session.aclose()
            await conversations.aclose()
            if store is not None:
                await store.disconnect()

    asyncio.run(_chat())


def _render_reply(message: Message | None, status: StatusUpdate | None, show_thinking: bool) -> Group:
    parts = []
    if message is not None:
        if show_thinking and message.thinking:
            parts.append(Panel(Text(message.thinking, style="dim italic"), title="Thinking", border_style="dim"))
        parts.append(Markdown(message.text or ""))
    if status is not None:
        parts.append(Text(f"{status.icon} {status.message}", style="dim"))
    return Group(*parts)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Message to send"),
    server: str | None = SERVER_OPTION,
    model: str | None = typer.Option(None, "--model", "-m", help="Model name (default: MYLOCALAI_MODEL)"),
    thread: str | None = typer.Option(None, "--thread", "-t", help="Continue an existing conversation"),
    thinking: bool = typer.Option(False, "--thinking", help="Show the model's thinking section"),
    check_model: bool = typer.Option(True, "--check/--no-check", help="Check the model server first"),
):
    """Send one message and stream the reply to the console."""
    settings = get_settings(console)
    server_url = server or settings.server_url
    model_name = model or settings.model

    async def _ask():
        conversations = get_conversations_client(server_url)
        session = get_session(
            server_url, model_name, conversations,
            check_model=check_model, system_prompt=settings.system_prompt(),
        )
        state: dict = {"message": None, "status": None, "error": None}

        try:
            if thread is not None:
                try:
                    await session.load_conversation(thread)
                except ConversationNotFoundError:
                    console.print(f"[red]Conversation not found: {thread}[/red]")
                    raise typer.Exit(code=1) from None

            with Live(_render_reply(None, None, thinking), console=console, refresh_per_second=12) as live:
                def on_update(update: SessionUpdate) -> None:
                    if isinstance(update, MessageUpserted):
                        state["message"] = update.message
                    elif isinstance(update, StatusChanged):
                        state["status"] = update.status
                    elif isinstance(update, StatusCleared):
                        state["status"] = None
                    elif isinstance(update, StreamFailed):
                        state["error"] = update.error
                    live.update(_render_reply(state["message"], state["status"], thinking))

                session.on_update(on_update)
                final = await session.send(question)
                state["status"] = None
                live.update(_render_reply(final or state["message"], None, thinking))

            if final is None:
                error = state["error"] or session.last_error or "no reply"
                console.print(f"[red]Error: {error}[/red]")
                raise typer.Exit(code=1)

            footer = f"thread {session.thread_id}"
            if final.response_time is not None:
                footer += f" · {final.response_time:.2f}s"
            console.print(f"[dim]{footer}[/dim]")
        except httpx.HTTPError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None
        finally:
            await session.aclose()
            await conversations.aclose()

    asyncio.run(_ask())


@app.command()
def status(server: str | None = SERVER_OPTION):
    """Check the server and its model."""
    settings = get_settings(console)
    server_url = server or settings.server_url

    async def _status():
        conversations = get_conversations_client(server_url)
        try:
            result = await conversations.health()
        except httpx.HTTPError as e:
            console.print(f"[red]Server not reachable at {server_url}: {e}[/red]")
            raise typer.Exit(code=1) from None
        finally:
            await conversations.aclose()

        table = Table(show_header=False, box=None)
        table.add_column("Metric", style="bold cyan", width=15)
        table.add_column("Value")
        table.add_row("Server", server_url)
        table.add_row("Status", "[green]ready[/green]" if result.success else "[red]unavailable[/red]")
        if result.message:
            table.add_row("Message", result.message)
        if result.error:
            table.add_row("Error", f"[red]{result.error}[/red]")
        if result.models:
            table.add_row("Models", ", ".join(result.models))
        console.print(Panel(table, title="MyLocalAI", border_style="cyan"))

        if not result.success:
            raise typer.Exit(code=1)

    asyncio.run(_status())


@conversations_app.command("list")
def list_conversations(
    server: str | None = SERVER_OPTION,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum threads to show"),
):
    """List threads, most recently updated first."""
    settings = get_settings(console)

    async def _list():
        client = get_conversations_client(server or settings.server_url)
        try:
            summaries = await client.list_conversations(limit=limit)
        except httpx.HTTPError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None
        finally:
            await client.aclose()

        if not summaries:
            console.print("[dim]No conversations yet.[/dim]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Thread", style="dim")
        table.add_column("Preview")
        table.add_column("Messages", justify="right", width=8)
        table.add_column("Updated", style="green")
        for summary in summaries:
            table.add_row(
                summary.thread_id,
                summary.preview,
                str(summary.message_count),
                summary.updated_at.astimezone().strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    asyncio.run(_list())


@conversations_app.command("show")
def show_conversation(
    thread_id: str = typer.Argument(..., help="Thread to show"),
    server: str | None = SERVER_OPTION,
    thinking: bool = typer.Option(False, "--thinking", help="Include thinking sections"),
):
    """Print the messages of one thread."""
    settings = get_settings(console)

    async def _show():
        client = get_conversations_client(server or settings.server_url)
        try:
            detail = await client.get_conversation(thread_id)
        except ConversationNotFoundError:
            console.print(f"[red]Conversation not found: {thread_id}[/red]")
            raise typer.Exit(code=1) from None
        except httpx.HTTPError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None
        finally:
            await client.aclose()

        console.print(f"[bold]Thread {detail.thread_id}[/bold] [dim]({detail.total_messages} messages)[/dim]\n")
        for stored in detail.messages:
            message = stored_to_message(stored)
            if message.sender.value == "user":
                console.print(Panel(Text(message.text), title="You", title_align="left", border_style="yellow"))
                continue
            if thinking and message.thinking:
                console.print(Panel(Text(message.thinking, style="dim italic"), title="Thinking", border_style="dim"))
            console.print(Panel(Markdown(message.text), title="Assistant", title_align="left", border_style="cyan"))

    asyncio.run(_show())


@conversations_app.command("delete")
def delete_conversation(
    thread_id: str | None = typer.Argument(None, help="Thread to delete"),
    all_threads: bool = typer.Option(False, "--all", help="Delete every thread"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    server: str | None = SERVER_OPTION,
):
    """Delete one thread, or all of them with --all."""
    if thread_id is None and not all_threads:
        console.print("[red]Error: give a thread id or --all[/red]")
        raise typer.Exit(code=1)

    settings = get_settings(console)
    target = "ALL conversations" if all_threads else f"conversation {thread_id}"
    if not yes and not typer.confirm(f"Delete {target}?"):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _delete():
        client = get_conversations_client(server or settings.server_url)
        try:
            if all_threads:
                deleted = await client.clear_conversations()
                console.print(f"[green]Deleted {deleted} conversation(s).[/green]")
            else:
                await client.delete_conversation(thread_id)
                console.print(f"[green]Deleted conversation {thread_id}.[/green]")
        except ConversationNotFoundError:
            console.print(f"[red]Conversation not found: {thread_id}[/red]")
            raise typer.Exit(code=1) from None
        except httpx.HTTPError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(code=1) from None
        finally:
            await client.aclose()

    asyncio.run(_delete())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
