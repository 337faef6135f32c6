"""
Main CLI application for conduit.

Usage:
    conduit chat [--agent ID] [--conversation ID] [--prompt TEXT] [--json]
    conduit replay FILE [--agent ID] [--format text|ndjson|frames|message]
    conduit agents list
    conduit sessions list|show|delete|export
    conduit config show|validate
    conduit version
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from conduit import __version__
from conduit.config import ConduitConfig, load_config, log_level, validate_config

app = typer.Typer(name="conduit", help="Conduit - one conversation, any coding agent")
agents_app = typer.Typer(help="Agent backends")
sessions_app = typer.Typer(help="Conversation history")
config_app = typer.Typer(help="Configuration management")

app.add_typer(agents_app, name="agents")
app.add_typer(sessions_app, name="sessions")
app.add_typer(config_app, name="config")

console = Console()
err_console = Console(stderr=True)

REPLAY_FORMATS = ("text", "ndjson", "frames", "message")

_options: dict[str, Any] = {"config": None, "profile": None, "log_level": None}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _setup_logging(level: int) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=err_console, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)


def _load_config() -> ConduitConfig:
    """Load config from the global options; exit with a message on failure."""
    try:
        cfg = load_config(_options["config"], profile=_options["profile"])
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)
    if _options["log_level"] is None:
        _setup_logging(log_level(cfg))
    return cfg


def _build_registry(cfg: ConduitConfig, runner=None):
    from conduit.agents.registry import build_default_registry
    from conduit.backends.local import LocalCommandRunner

    return build_default_registry(cfg, runner or LocalCommandRunner())


async def _open_store(cfg: ConduitConfig):
    from conduit.session.store import ConversationStore

    store = ConversationStore(cfg.session.history_db)
    await store.init()
    return store


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------

@app.callback()
def main_options(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    log_level_opt: Optional[str] = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"
    ),
):
    """Conduit - normalized streaming conversations with coding agents."""
    _options["config"] = config
    _options["profile"] = profile
    _options["log_level"] = log_level_opt
    if log_level_opt is not None:
        _setup_logging(getattr(logging, log_level_opt.upper(), logging.WARNING))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    agent: Optional[str] = typer.Option(None, "--agent", "-a", help="Agent id"),
    conversation: Optional[str] = typer.Option(
        None, "--conversation", help="Resume conversation ID"
    ),
    prompt: Optional[str] = typer.Option(
        None, "--prompt", "-p", help="Run a single prompt and exit"
    ),
    model: Optional[str] = typer.Option(None, help="Model override"),
    cwd: Optional[str] = typer.Option(None, help="Working directory for the agent"),
    as_json: bool = typer.Option(False, "--json", help="Emit NDJSON chunks (with --prompt)"),
    no_history: bool = typer.Option(False, "--no-history", help="Do not save the conversation"),
):
    """Chat with an agent, interactively or for a single prompt."""
    from conduit.cli.chat import ChatHandler
    from conduit.stream.wire import encode_chunk

    cfg = _load_config()
    registry = _build_registry(cfg)
    if agent is not None and not registry.is_valid(agent):
        console.print(f"[red]Unknown agent:[/red] {agent}. Available: {', '.join(registry.ids())}")
        raise typer.Exit(1)

    async def _run():
        store = None if no_history else await _open_store(cfg)
        on_chunk = None
        if as_json:
            on_chunk = lambda chunk: typer.echo(encode_chunk(chunk), nl=False)  # noqa: E731
        handler = ChatHandler(
            registry,
            store=store,
            console=console,
            agent_id=agent,
            model=model,
            cwd=cwd or cfg.agents.cwd or None,
            on_chunk=on_chunk,
        )
        try:
            if conversation:
                await handler.resume(conversation)
            if prompt is not None:
                await handler.run_turn(prompt)
            else:
                await handler.run_loop()
        finally:
            if store is not None:
                await store.close()

    try:
        asyncio.run(_run())
    except KeyError as e:
        console.print(f"[red]Error:[/red] {e.args[0]}")
        raise typer.Exit(1)


@app.command()
def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Captured JSONL output"),
    agent: str = typer.Option("claude", "--agent", "-a", help="Agent whose output this is"),
    fmt: str = typer.Option("text", "--format", "-f", help="text, ndjson, frames or message"),
    chunk_size: Optional[int] = typer.Option(
        None, help="Deliver the file in fragments of this many characters"
    ),
):
    """Replay a captured agent transcript through the normalization pipeline."""
    from conduit.agents.base import ExecuteParams
    from conduit.agents.registry import build_default_registry
    from conduit.backends.scripted import ScriptedCommandRunner
    from conduit.cli.output import ChunkPrinter
    from conduit.stream.accumulator import MessageAccumulator
    from conduit.stream.lines import split_records
    from conduit.stream.transport import adapt
    from conduit.stream.wire import encode_chunk

    if fmt not in REPLAY_FORMATS:
        console.print(f"[red]Unknown format:[/red] {fmt}. Use one of: {', '.join(REPLAY_FORMATS)}")
        raise typer.Exit(1)

    cfg = _load_config()
    runner = ScriptedCommandRunner.from_file(path, chunk_size=chunk_size)

    async def _query(params: ExecuteParams) -> AsyncIterator[dict]:
        for record in split_records([path.read_text(encoding="utf-8")]):
            yield record

    registry = build_default_registry(cfg, runner, sdk_query=_query)
    if not registry.is_valid(agent):
        console.print(f"[red]Unknown agent:[/red] {agent}. Available: {', '.join(registry.ids())}")
        raise typer.Exit(1)
    provider = registry.get(agent)

    async def _run():
        chunks = provider.execute(ExecuteParams(prompt="(replay)"))
        if fmt == "frames":
            async for frame in adapt(chunks):
                typer.echo(json.dumps(frame.to_dict()))
            return
        accumulator = MessageAccumulator("replay", {"agentId": agent})
        printer = ChunkPrinter(console, show_status=True)
        async for chunk in chunks:
            accumulator.process(chunk)
            if fmt == "ndjson":
                typer.echo(encode_chunk(chunk), nl=False)
            elif fmt == "text":
                printer.print_chunk(chunk)
        if fmt == "message":
            typer.echo(json.dumps(accumulator.message.to_dict(), indent=2))

    asyncio.run(_run())


@agents_app.command("list")
def agents_list():
    """List available agents."""
    from conduit.cli.output import OutputFormatter

    cfg = _load_config()
    registry = _build_registry(cfg)
    OutputFormatter(console).format_agent_list(registry.list(), registry.default_id)


@sessions_app.command("list")
def sessions_list(
    limit: Optional[int] = typer.Option(None, help="Show at most this many"),
):
    """List stored conversations."""

    async def _run():
        from conduit.cli.output import OutputFormatter

        store = await _open_store(_load_config())
        try:
            conversations = await store.list_conversations(limit=limit)
            OutputFormatter(console).format_conversation_list(conversations)
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("show")
def sessions_show(conversation_id: str = typer.Argument(..., help="Conversation ID")):
    """Show a conversation."""

    async def _run():
        from conduit.cli.output import OutputFormatter

        store = await _open_store(_load_config())
        try:
            if await store.get_conversation(conversation_id) is None:
                console.print(f"[red]Conversation not found:[/red] {conversation_id}")
                raise typer.Exit(1)
            messages = await store.get_messages(conversation_id)
            OutputFormatter(console).format_messages(messages)
        finally:
            await store.close()

    asyncio.run(_run())


@sessions_app.command("delete")
def sessions_delete(conversation_id: str = typer.Argument(..., help="Conversation ID")):
    """Delete a conversation."""

    async def _run():
        store = await _open_store(_load_config())
        try:
            deleted = await store.delete_conversation(conversation_id)
        finally:
            await store.close()
        if not deleted:
            console.print(f"[red]Conversation not found:[/red] {conversation_id}")
            raise typer.Exit(1)
        console.print(f"Deleted conversation: {conversation_id}")

    asyncio.run(_run())


@sessions_app.command("export")
def sessions_export(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    fmt: str = typer.Option("markdown", "--format", "-f", help="Export format: markdown, json"),
):
    """Export a conversation as markdown or json."""

    async def _run():
        from conduit.cli.output import OutputFormatter

        store = await _open_store(_load_config())
        try:
            record = await store.get_conversation(conversation_id)
            if record is None:
                console.print(f"[red]Conversation not found:[/red] {conversation_id}")
                raise typer.Exit(1)
            messages = await store.get_messages(conversation_id)
        finally:
            await store.close()
        typer.echo(OutputFormatter(console).export_conversation(record, messages, fmt))

    asyncio.run(_run())


@config_app.command("show")
def config_show():
    """Show effective config."""
    from conduit.cli.output import OutputFormatter

    cfg = _load_config()
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and report any problems."""
    from conduit.agents.mappers import MAPPERS

    cfg = _load_config()
    problems = validate_config(cfg, known_agents=sorted(MAPPERS))
    if problems:
        console.print("[red]Config validation failed:[/red]")
        for problem in problems:
            console.print(f"  - {problem}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if cfg.source:
        console.print(f"  Loaded from: {cfg.source}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  Default agent: {cfg.agents.default}")
    console.print(f"  History db: {cfg.session.history_db}")


@app.command()
def version():
    """Show version."""
    console.print(f"conduit-core v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
