"""
Main CLI application for parley.

Usage:
    parley chat [--profile NAME] [--conversation ID] [--system TEXT]
    parley send MESSAGE [--stream/--no-stream]
    parley history list|show|export|delete
    parley config show|validate
    parley version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from parley import __version__
from parley.config import ParleyConfig, load_config
from parley.errors import ParleyError

app = typer.Typer(name="parley", help="parley - chat completion client")
history_app = typer.Typer(help="Conversation history management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(history_app, name="history")
app.add_typer(config_app, name="config")

console = Console()

_state: dict[str, Optional[Path]] = {"config_path": None}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file: --config first, then standard locations."""
    if _state["config_path"] is not None:
        return _state["config_path"]
    candidates = [
        Path.cwd() / "parley.yaml",
        Path.cwd() / "parley.yml",
        Path.home() / ".config" / "parley" / "config.yaml",
        Path.home() / ".parley" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _load(profile: str | None = None, overrides: dict | None = None) -> ParleyConfig:
    return load_config(_get_config_path(), profile=profile, cli_overrides=overrides)


def _model_overrides(model: str | None, dialect: str | None) -> dict:
    overrides = {}
    if model:
        overrides["llm.model"] = model
    if dialect:
        overrides["llm.dialect"] = dialect
    return overrides


@app.callback()
def _main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config_path"] = config


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    conversation: Optional[str] = typer.Option(None, "--conversation", help="Resume conversation ID"),
    system: Optional[str] = typer.Option(None, "--system", help="Directing message for a new conversation"),
    model: Optional[str] = typer.Option(None, help="Model name"),
    dialect: Optional[str] = typer.Option(None, help="Wire dialect: current or legacy"),
):
    """Start an interactive chat session."""
    from parley.cli.chat import ChatHandler
    from parley.client import Client
    from parley.conversation.store import HistoryStore

    cfg = _load(profile, _model_overrides(model, dialect))

    async def _run():
        async with Client.from_config(cfg) as client, HistoryStore(cfg.history.history_db) as store:
            if conversation:
                try:
                    conv = await client.restore_conversation(store, conversation)
                except KeyError:
                    console.print(f"[red]Conversation not found:[/red] {conversation}")
                    raise typer.Exit(1)
            elif system:
                conv = client.new_conversation_directed(system)
            else:
                conv = client.new_conversation()
            handler = ChatHandler(conv, store=store, console=console)
            await handler.run_loop()

    asyncio.run(_run())


@app.command()
def send(
    message: str = typer.Argument(..., help="Message to send"),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Stream the reply"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    model: Optional[str] = typer.Option(None, help="Model name"),
    dialect: Optional[str] = typer.Option(None, help="Wire dialect: current or legacy"),
):
    """Send a single message without keeping history."""
    from parley.client import Client
    from parley.llm.chunks import Content

    cfg = _load(profile, _model_overrides(model, dialect))

    async def _run():
        async with Client.from_config(cfg) as client:
            if stream:
                async for chunk in client.send_message_streaming(message):
                    if isinstance(chunk, Content) and chunk.response_index == 0:
                        console.print(chunk.delta, end="", markup=False)
                console.print()
            else:
                result = await client.send_message(message)
                console.print(result.message.content or "", markup=False)

    try:
        asyncio.run(_run())
    except ParleyError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@history_app.command("list")
def history_list():
    """List stored conversations."""

    async def _run():
        from parley.cli.output import OutputFormatter
        from parley.conversation.store import HistoryStore

        cfg = _load()
        async with HistoryStore(cfg.history.history_db) as store:
            conversations = await store.list_conversations()
        OutputFormatter(console).format_conversation_list(conversations)

    asyncio.run(_run())


@history_app.command("show")
def history_show(conversation_id: str = typer.Argument(..., help="Conversation ID")):
    """Show the messages of a conversation."""

    async def _run():
        from parley.cli.output import OutputFormatter
        from parley.conversation.store import HistoryStore

        cfg = _load()
        async with HistoryStore(cfg.history.history_db) as store:
            messages = await store.load(conversation_id)
        OutputFormatter(console).format_history(messages)

    try:
        asyncio.run(_run())
    except KeyError:
        console.print(f"[red]Conversation not found:[/red] {conversation_id}")
        raise typer.Exit(1)


@history_app.command("export")
def history_export(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    fmt: str = typer.Option("markdown", "--format", "-f", help="Export format: markdown, json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
):
    """Export a conversation as markdown or JSON."""

    async def _run() -> str:
        from parley.cli.output import OutputFormatter
        from parley.conversation.store import HistoryStore

        cfg = _load()
        async with HistoryStore(cfg.history.history_db) as store:
            messages = await store.load(conversation_id)
        return OutputFormatter(console).export_history(messages, fmt)

    try:
        text = asyncio.run(_run())
    except KeyError:
        console.print(f"[red]Conversation not found:[/red] {conversation_id}")
        raise typer.Exit(1)

    if output is not None:
        output.write_text(text, encoding="utf-8")
        console.print(f"Exported to {output}")
    else:
        console.print(text, markup=False)


@history_app.command("delete")
def history_delete(conversation_id: str = typer.Argument(..., help="Conversation ID")):
    """Delete a conversation."""

    async def _run():
        from parley.conversation.store import HistoryStore

        cfg = _load()
        async with HistoryStore(cfg.history.history_db) as store:
            await store.delete(conversation_id)
        console.print(f"Deleted conversation: {conversation_id}")

    asyncio.run(_run())


@config_app.command("show")
def config_show(profile: Optional[str] = typer.Option(None, help="Config profile name")):
    """Show effective config."""
    from parley.cli.output import OutputFormatter

    cfg = _load(profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(profile: Optional[str] = typer.Option(None, help="Config profile name")):
    """Validate config and show any type issues."""
    from parley.llm.dialects import get_dialect

    config_path = _get_config_path()
    try:
        cfg = _load(profile)
        model_config = cfg.model_configuration()
        get_dialect(model_config.dialect)
    except Exception as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Model: {model_config.model} ({model_config.dialect} dialect)")
    console.print(f"  Function validation: {model_config.function_validation.value}")
    console.print(f"  History database: {cfg.history.history_db}")


@app.command()
def version():
    """Show version."""
    console.print(f"parley v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
