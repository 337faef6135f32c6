"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from conduit.stream.accumulator import (
    STATE_OUTPUT_ERROR,
    STATE_OUTPUT_AVAILABLE,
    AccumulatedMessage,
    ReasoningPart,
    StructuredDataPart,
    TextPart,
    ToolInvocationPart,
)
from conduit.stream.types import (
    DataChunk,
    ErrorChunk,
    MessageEnd,
    ReasoningDelta,
    TextDelta,
    ToolResult,
    ToolStart,
    UnifiedChunk,
)
from conduit.types import DataPartType

STATE_COLORS = {
    STATE_OUTPUT_AVAILABLE: "green",
    STATE_OUTPUT_ERROR: "red",
}

ROLE_COLORS = {
    "user": "blue",
    "assistant": "green",
}

_PREVIEW_CHARS = 200


def _describe_data(data_type: str, payload: dict) -> str:
    if data_type == DataPartType.FILE_WRITTEN:
        return f"wrote {payload.get('path', '?')}"
    if data_type == DataPartType.COMMAND_OUTPUT:
        return f"{payload.get('stream', 'stdout')}: {str(payload.get('output', ''))[:_PREVIEW_CHARS]}"
    if data_type == DataPartType.PREVIEW_URL:
        return f"preview {payload.get('url', '?')}"
    if data_type == DataPartType.AGENT_STATUS:
        return str(payload.get("message") or payload.get("status", ""))
    return json.dumps(payload, default=str)[:_PREVIEW_CHARS]


class OutputFormatter:
    """Rich-based output formatting for the conduit CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_agent_list(self, agents: list[dict[str, str]], default_id: str | None) -> None:
        table = Table(title="Agents")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name", no_wrap=True)
        table.add_column("Description")

        for a in agents:
            marker = " (default)" if a["id"] == default_id else ""
            table.add_row(a["id"] + marker, a["name"], a.get("description", ""))

        self.console.print(table)

    def format_conversation_list(self, conversations: list[dict]) -> None:
        if not conversations:
            self.console.print("[dim]No conversations found.[/dim]")
            return

        table = Table(title="Conversations")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Agent", no_wrap=True)
        table.add_column("Updated", no_wrap=True)
        table.add_column("Title")

        for c in conversations:
            table.add_row(
                c.get("conversation_id", "?"),
                c.get("agent_id", "?"),
                c.get("updated_at", "?"),
                c.get("title", ""),
            )

        self.console.print(table)

    def format_messages(self, messages: list[AccumulatedMessage]) -> None:
        if not messages:
            self.console.print("[dim]No messages.[/dim]")
            return

        for message in messages:
            color = ROLE_COLORS.get(message.role, "white")
            self.console.print(f"[bold {color}]{message.role}>[/bold {color}]")
            for part in message.parts:
                self._format_part(part)
            usage = message.metadata.get("usage")
            if usage:
                self.console.print(
                    f"  [dim]tokens: {usage.get('inputTokens', 0)} in / "
                    f"{usage.get('outputTokens', 0)} out[/dim]"
                )
            self.console.print()

    def _format_part(self, part: Any) -> None:
        if isinstance(part, TextPart):
            self.console.print(part.text, markup=False)
        elif isinstance(part, ReasoningPart):
            self.console.print(Text(part.text, style="dim italic"))
        elif isinstance(part, ToolInvocationPart):
            color = STATE_COLORS.get(part.state, "yellow")
            body = json.dumps(part.input, indent=2, default=str)
            if part.output is not None:
                body += f"\n\n{str(part.output)[:_PREVIEW_CHARS * 2]}"
            self.console.print(Panel(
                Text(body),
                title=f"{escape(part.tool_name)} [{color}]{part.state}[/{color}]",
                title_align="left",
            ))
        elif isinstance(part, StructuredDataPart):
            self.console.print(
                f"  [cyan]{part.data_type}[/cyan] {escape(_describe_data(part.data_type, part.payload))}"
            )

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))

    def export_conversation(
        self,
        conversation: dict,
        messages: list[AccumulatedMessage],
        fmt: str = "markdown",
    ) -> str:
        if fmt == "json":
            return json.dumps(
                {**conversation, "messages": [m.to_dict() for m in messages]},
                indent=2,
                default=str,
            )

        lines: list[str] = [f"# {conversation.get('title') or 'Conversation'}\n"]
        lines.append(f"Agent: `{conversation.get('agent_id', '?')}`\n")
        for message in messages:
            if message.role == "user":
                lines.append(f"## User\n\n> {message.text()}\n")
                continue
            lines.append("## Assistant\n")
            for part in message.parts:
                if isinstance(part, TextPart):
                    lines.append(f"{part.text}\n")
                elif isinstance(part, ToolInvocationPart):
                    lines.append(f"### Tool: {part.tool_name} ({part.state})\n")
                    lines.append(f"```json\n{json.dumps(part.input, indent=2, default=str)}\n```\n")
                    if part.output:
                        lines.append(f"```\n{str(part.output)[:500]}\n```\n")
                elif isinstance(part, StructuredDataPart) and part.data_type == DataPartType.FILE_WRITTEN:
                    lines.append(f"- wrote `{part.payload.get('path', '?')}`\n")
        return "\n".join(lines)


class ChunkPrinter:
    """Renders a live chunk stream to the console."""

    def __init__(self, console: Console | None = None, show_status: bool = False) -> None:
        self.console = console or Console()
        self.show_status = show_status
        self._tools: dict[str, str] = {}
        self._mid_line = False

    def _newline(self) -> None:
        if self._mid_line:
            self.console.print()
            self._mid_line = False

    def print_chunk(self, chunk: UnifiedChunk) -> None:
        if isinstance(chunk, TextDelta):
            self.console.print(chunk.text, end="", markup=False, highlight=False)
            self._mid_line = not chunk.text.endswith("\n")
        elif isinstance(chunk, ReasoningDelta):
            self.console.print(Text(chunk.text, style="dim italic"), end="")
            self._mid_line = True
        elif isinstance(chunk, ToolStart):
            self._newline()
            self._tools[chunk.tool_call_id] = chunk.tool_name
            self.console.print(f"[yellow]> {chunk.tool_name}[/yellow]")
        elif isinstance(chunk, ToolResult):
            name = self._tools.get(chunk.tool_call_id, "tool")
            status = "[red]failed[/red]" if chunk.is_error else "[green]done[/green]"
            self.console.print(f"[dim]  {name}[/dim] {status}")
        elif isinstance(chunk, DataChunk):
            if chunk.data_type == DataPartType.AGENT_STATUS and not self.show_status:
                return
            self._newline()
            self.console.print(
                f"[dim]  {chunk.data_type}: {escape(_describe_data(chunk.data_type, chunk.payload))}[/dim]"
            )
        elif isinstance(chunk, ErrorChunk):
            self._newline()
            code = f" ({chunk.code})" if chunk.code else ""
            self.console.print(f"[red]Error{escape(code)}:[/red] {escape(chunk.message)}")
        elif isinstance(chunk, MessageEnd):
            self._newline()
            if chunk.usage is not None:
                self.console.print(
                    f"[dim]tokens: {chunk.usage.input_tokens} in / "
                    f"{chunk.usage.output_tokens} out[/dim]"
                )
