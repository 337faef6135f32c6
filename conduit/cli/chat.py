"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import logging
import signal
import uuid
from typing import Callable

from rich.console import Console

from conduit.agents.base import ExecuteParams
from conduit.agents.registry import AgentRegistry
from conduit.cli.output import ChunkPrinter, OutputFormatter
from conduit.session.store import ConversationStore
from conduit.stream.accumulator import AccumulatedMessage, MessageAccumulator, user_message
from conduit.stream.types import UnifiedChunk

logger = logging.getLogger(__name__)


class ChatHandler:
    """
    Manages the chat loop for one conversation.

    Each prompt runs one agent execution.  The user prompt and the
    accumulated assistant message are saved to the store, and the backend
    session id is remembered so the next turn resumes the same session.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        store: ConversationStore | None = None,
        console: Console | None = None,
        agent_id: str | None = None,
        model: str | None = None,
        cwd: str | None = None,
        on_chunk: Callable[[UnifiedChunk], None] | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.agent_id = agent_id or (registry.default_id or "")
        self.model = model
        self.cwd = cwd
        self.on_chunk = on_chunk
        self.conversation_id: str | None = None
        self.agent_session_id: str | None = None
        self._running = True

    async def resume(self, conversation_id: str) -> None:
        """Continue a stored conversation with the agent it was started with."""
        if self.store is None:
            raise RuntimeError("No conversation store configured")
        record = await self.store.get_conversation(conversation_id)
        if record is None:
            raise KeyError(f"Unknown conversation: {conversation_id}")
        self.registry.get(record["agent_id"])
        self.conversation_id = conversation_id
        self.agent_id = record["agent_id"]
        self.agent_session_id = record["agent_session_id"]

    async def run_turn(
        self,
        prompt: str,
        cancel: asyncio.Event | None = None,
    ) -> AccumulatedMessage:
        """Execute *prompt* and return the accumulated assistant message."""
        agent = self.registry.get(self.agent_id)

        if self.store is not None:
            if self.conversation_id is None:
                self.conversation_id = await self.store.create_conversation(agent.id)
            await self.store.append_message(self.conversation_id, user_message(prompt))

        metadata = {"agentId": agent.id}
        if self.model:
            metadata["model"] = self.model
        accumulator = MessageAccumulator(str(uuid.uuid4()), metadata)
        printer = ChunkPrinter(self.console)
        params = ExecuteParams(
            prompt=prompt,
            session_id=self.agent_session_id,
            model=self.model,
            cwd=self.cwd,
            cancel=cancel,
        )

        async for chunk in agent.execute(params):
            accumulator.process(chunk)
            if self.on_chunk is not None:
                self.on_chunk(chunk)
            else:
                printer.print_chunk(chunk)

        message = accumulator.message
        session_id = message.metadata.get("sessionId")
        if session_id:
            self.agent_session_id = session_id
        if self.store is not None and self.conversation_id is not None:
            await self.store.append_message(self.conversation_id, message)
            if session_id:
                await self.store.set_agent_session(self.conversation_id, session_id)
        return message

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/history":
            if self.store is None or self.conversation_id is None:
                self.console.print("[dim]No messages.[/dim]")
            else:
                messages = await self.store.get_messages(self.conversation_id)
                self.formatter.format_messages(messages)
            return True

        if cmd == "/agents":
            self.formatter.format_agent_list(self.registry.list(), self.agent_id)
            return True

        if cmd == "/switch":
            if not arg:
                self.console.print(f"  Available agents: {', '.join(self.registry.ids())}")
                self.console.print(f"  Active: {self.agent_id}")
            else:
                try:
                    self.registry.get(arg)
                except KeyError as e:
                    self.console.print(f"  [red]Error:[/red] {e.args[0]}")
                    return True
                # Backend sessions are not portable between agents.
                self.agent_id = arg
                self.conversation_id = None
                self.agent_session_id = None
                self.console.print(f"  Switched to agent: [bold]{arg}[/bold] (new conversation)")
            return True

        if cmd == "/new":
            self.conversation_id = None
            self.agent_session_id = None
            self.console.print("  Started a new conversation.")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit     - Exit the chat\n"
                "  /history  - Show this conversation\n"
                "  /agents   - List available agents\n"
                "  /switch   - Switch agent\n"
                "  /new      - Start a new conversation\n"
                "  /help     - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> None:
        """Run one turn; Ctrl-C cancels the turn rather than the program."""
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        installed = False
        try:
            loop.add_signal_handler(signal.SIGINT, cancel.set)
            installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler unavailable; turns cannot be cancelled")

        try:
            await self.run_turn(user_input, cancel=cancel)
        except Exception as e:
            self.console.print(f"\n[red]Error:[/red] {e}")
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
        self.console.print()

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            f"[bold]Conduit[/bold] - chatting with [cyan]{self.agent_id}[/cyan]\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            self.console.print("[dim]assistant>[/dim] ")
            await self.handle_input(user_input)
