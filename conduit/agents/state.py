"""Per-execution state shared by the provider event mappers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from conduit.stream.tool_tracker import ToolCallTracker, derive_data_parts
from conduit.stream.types import (
    ToolInputDelta,
    ToolResult,
    ToolStart,
    UnifiedChunk,
    Usage,
)


@dataclass
class TurnState:
    """
    Everything a mapper remembers between events of one execution.

    A fresh ``TurnState`` is built for every execution; nothing leaks from
    one turn into the next.
    """

    provider_id: str
    tracker: ToolCallTracker = field(default_factory=ToolCallTracker)
    session_id: str | None = None

    # Duplicate suppression between fine-grained stream events and the
    # coarse per-message batch events that repeat them.
    streaming_message_id: str | None = None
    streamed_message_ids: set[str] = field(default_factory=set)
    saw_stream_events: bool = False
    block_tools: dict[int, str] = field(default_factory=dict)

    started_tools: set[str] = field(default_factory=set)
    resolved_tools: set[str] = field(default_factory=set)

    input_tokens: int = 0
    output_tokens: int = 0
    saw_usage: bool = False
    saw_terminal: bool = False

    # ------------------------------------------------------------------
    # Streamed-message bookkeeping
    # ------------------------------------------------------------------

    def begin_streamed_message(self, message_id: str | None) -> None:
        self.streaming_message_id = message_id
        self.block_tools.clear()

    def mark_streamed(self) -> None:
        """Record that content for the current message arrived as deltas."""
        self.saw_stream_events = True
        if self.streaming_message_id:
            self.streamed_message_ids.add(self.streaming_message_id)

    def already_streamed(self, message_id: str | None) -> bool:
        if message_id and self.streaming_message_id:
            return message_id in self.streamed_message_ids
        return self.saw_stream_events

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    def start_tool(self, call_id: str, name: str) -> list[UnifiedChunk]:
        """``tool-start`` for a new id, nothing for one already started."""
        if call_id in self.started_tools:
            return []
        self.started_tools.add(call_id)
        self.tracker.start(call_id, name)
        return [ToolStart(tool_call_id=call_id, tool_name=name)]

    def record_tool_input(self, call_id: str, fragment: str) -> list[UnifiedChunk]:
        if not fragment or call_id in self.resolved_tools:
            return []
        self.tracker.record_input(call_id, fragment)
        return [ToolInputDelta(tool_call_id=call_id, input=fragment)]

    def tool_input(self, call_id: str, arguments: Any) -> list[UnifiedChunk]:
        """A complete argument object, sent as a single input delta."""
        return self.record_tool_input(call_id, json.dumps(arguments))

    def finish_tool(
        self,
        call_id: str,
        output: str,
        is_error: bool = False,
        fallback_name: str = "unknown",
        derive_data: bool = True,
    ) -> list[UnifiedChunk]:
        """
        ``tool-result`` for *call_id*, plus the data chunks it implies.

        A call that was never started gets its ``tool-start`` first; a call
        that was already resolved yields nothing.
        """
        if call_id in self.resolved_tools:
            return []
        chunks: list[UnifiedChunk] = []
        chunks.extend(self.start_tool(call_id, fallback_name))
        self.resolved_tools.add(call_id)
        chunks.append(ToolResult(tool_call_id=call_id, output=output, is_error=is_error))

        resolved = self.tracker.resolve(call_id)
        if derive_data and resolved is not None:
            name, raw_input = resolved
            chunks.extend(derive_data_parts(name, raw_input, output, is_error))
        return chunks

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def add_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.saw_usage = True

    def total_usage(self) -> Usage | None:
        if not self.saw_usage:
            return None
        return Usage(input_tokens=self.input_tokens, output_tokens=self.output_tokens)
