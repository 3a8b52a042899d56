"""
Main CLI application for nexus.

Usage:
    nexus chat [--profile NAME] [--chat ID] [--model CODE]
    nexus chats list|show|delete
    nexus tools list|info
    nexus config show|validate
    nexus version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from nexus.config import NexusConfig, load_config

app = typer.Typer(name="nexus", help="Nexus - streaming LLM chat with tools")
chats_app = typer.Typer(help="Stored chat management")
tools_app = typer.Typer(help="Tool management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(chats_app, name="chats")
app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()


@app.callback()
def main_options(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "nexus.yaml",
        Path.cwd() / "nexus.yml",
        Path.home() / ".config" / "nexus" / "config.yaml",
        Path.home() / ".nexus" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _load(profile: str | None = None, model: str | None = None) -> NexusConfig:
    overrides = {"model.code": model} if model else None
    return load_config(_get_config_path(), profile=profile, cli_overrides=overrides)


async def _setup_stack(cfg: NexusConfig, chat_id: str | None = None):
    """Wire up the full stack for chat."""
    from nexus.cli.chat import ChatHandler
    from nexus.llm.transport import StreamTransport
    from nexus.orchestrator.core import ConversationOrchestrator
    from nexus.prompts.system import build_system_prompt
    from nexus.session.store import SQLiteTranscriptStore
    from nexus.tools.builtin import build_registry

    store = SQLiteTranscriptStore(cfg.session.history_db)
    await store.init()

    if chat_id is None:
        chat_id = await store.create_chat({"model": cfg.model.code})
    transcript = await store.open_transcript(chat_id)

    registry = build_registry(cfg.tools)

    transport = StreamTransport(
        cfg.api_key,
        url=cfg.llm.api_base,
        referer=cfg.llm.referer or None,
        title=cfg.llm.title or None,
        stall_timeout=cfg.stream.stall_timeout,
        watchdog_interval=cfg.stream.watchdog_interval,
        request_timeout=cfg.stream.request_timeout,
        resource_timeout=cfg.stream.resource_timeout,
        finish_grace=cfg.stream.finish_grace,
    )

    system_prompt = build_system_prompt(
        tools=registry.list() if cfg.model.supports_tools else None,
        user_location=cfg.session.user_location or None,
    )

    handler = ChatHandler(console=console)
    handler.orchestrator = ConversationOrchestrator(
        transcript,
        transport,
        registry,
        model=cfg.model,
        stream_config=cfg.stream,
        system_prompt=system_prompt,
        tool_timeout=cfg.tools.timeout_seconds,
        listener=handler.stream_handlers(),
    )
    return handler, store


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    chat_id: Optional[str] = typer.Option(None, "--chat", help="Reopen a stored chat"),
    model: Optional[str] = typer.Option(None, "--model", help="Model code override"),
):
    """Start an interactive chat."""
    cfg = _load(profile, model)
    if not cfg.api_key():
        console.print(f"[red]Missing API key:[/red] set {cfg.llm.api_key_env}")
        raise typer.Exit(1)

    async def _run():
        handler, store = await _setup_stack(cfg, chat_id)
        try:
            console.print(f"[dim]chat {handler.orchestrator.transcript.chat_id}[/dim]")
            await handler.run_loop()
        finally:
            await store.close()

    try:
        asyncio.run(_run())
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@chats_app.command("list")
def chats_list():
    """List stored chats."""

    async def _run():
        from nexus.cli.output import OutputFormatter
        from nexus.session.store import SQLiteTranscriptStore

        store = SQLiteTranscriptStore(_load().session.history_db)
        await store.init()
        try:
            OutputFormatter(console).format_chat_list(await store.list_chats())
        finally:
            await store.close()

    asyncio.run(_run())


@chats_app.command("show")
def chats_show(chat_id: str = typer.Argument(..., help="Chat ID")):
    """Show the turns of a chat."""

    async def _run():
        from nexus.cli.output import OutputFormatter
        from nexus.session.store import SQLiteTranscriptStore

        store = SQLiteTranscriptStore(_load().session.history_db)
        await store.init()
        try:
            OutputFormatter(console).format_turns(await store.get_turns(chat_id))
        finally:
            await store.close()

    asyncio.run(_run())


@chats_app.command("delete")
def chats_delete(chat_id: str = typer.Argument(..., help="Chat ID")):
    """Delete a chat and its turns."""

    async def _run():
        from nexus.session.store import SQLiteTranscriptStore

        store = SQLiteTranscriptStore(_load().session.history_db)
        await store.init()
        try:
            await store.delete_chat(chat_id)
        finally:
            await store.close()
        console.print(f"Deleted chat: {chat_id}")

    asyncio.run(_run())


@tools_app.command("list")
def tools_list():
    """List registered tools."""
    from nexus.cli.output import OutputFormatter
    from nexus.tools.builtin import build_registry

    registry = build_registry(_load().tools)
    OutputFormatter(console).format_tool_list(registry.list())


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from nexus.cli.output import OutputFormatter
    from nexus.tools.builtin import build_registry

    tool = build_registry(_load().tools).get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from nexus.cli.output import OutputFormatter

    OutputFormatter(console).format_config(_load(profile).to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and show a summary."""
    config_path = _get_config_path()
    try:
        cfg = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  API base: {cfg.llm.api_base}")
    console.print(f"  Model: {cfg.model.code}")
    key_state = "[green]set[/green]" if cfg.api_key() else "[red]missing[/red]"
    console.print(f"  API key ({cfg.llm.api_key_env}): {key_state}")


@app.command()
def version():
    """Show version."""
    console.print("nexus-core v0.1.0")


def main():
    app()


if __name__ == "__main__":
    main()
