"""
Folds a unified chunk stream into one structured assistant message.

Usage::

    acc = MessageAccumulator("msg-1", {"agentId": "claude"})
    async for chunk in agent.execute(params):
        message = acc.process(chunk)
        render(message)

``process`` returns the same ``AccumulatedMessage`` object on every call so a
UI can hold a reference and observe it growing.  The accumulator never
raises on out-of-order input: results for unknown tool calls are ignored.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from conduit.stream.data_parts import parse_data_part
from conduit.stream.types import (
    DataChunk,
    ErrorChunk,
    MessageEnd,
    MessageStart,
    ReasoningDelta,
    TextDelta,
    ToolInputDelta,
    ToolResult,
    ToolStart,
    UnifiedChunk,
)
from conduit.types import DataPartType

STATE_INPUT_STREAMING = "input-streaming"
STATE_OUTPUT_AVAILABLE = "output-available"
STATE_OUTPUT_ERROR = "output-error"


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


@dataclass
class TextPart:
    text: str = ""

    type: ClassVar[str] = "text"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ReasoningPart:
    text: str = ""

    type: ClassVar[str] = "reasoning"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolInvocationPart:
    tool_call_id: str
    tool_name: str
    state: str = STATE_INPUT_STREAMING
    input: Any = field(default_factory=dict)
    output: Any = None
    raw_input: str = field(default="", repr=False, compare=False)

    type: ClassVar[str] = "tool-invocation"

    def finalize_input(self) -> None:
        """Decode the accumulated raw argument string into ``input``."""
        if not self.raw_input:
            return
        try:
            self.input = json.loads(self.raw_input)
        except (json.JSONDecodeError, ValueError):
            self.input = {"input": self.raw_input}

    def to_dict(self) -> dict[str, Any]:
        tool_input = self.input
        if self.state == STATE_INPUT_STREAMING and self.raw_input:
            # Call never resolved (aborted turn); keep the best-effort input.
            try:
                tool_input = json.loads(self.raw_input)
            except (json.JSONDecodeError, ValueError):
                tool_input = {"input": self.raw_input}
        invocation: dict[str, Any] = {
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "state": self.state,
            "input": tool_input,
        }
        if self.state != STATE_INPUT_STREAMING:
            invocation["output"] = self.output
        return {"type": self.type, "toolInvocation": invocation}


@dataclass
class StructuredDataPart:
    data_type: str
    payload: dict[str, Any] = field(default_factory=dict)

    type: ClassVar[str] = "structured-data"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "structuredData": {"dataType": self.data_type, "payload": self.payload},
        }


Part = Union[TextPart, ReasoningPart, ToolInvocationPart, StructuredDataPart]


def part_from_dict(data: dict[str, Any]) -> Part:
    """Rebuild a part from its persisted dict.  Raises ``ValueError``."""
    ptype = data.get("type")
    if ptype == "text":
        return TextPart(text=str(data.get("text", "")))
    if ptype == "reasoning":
        return ReasoningPart(text=str(data.get("text", "")))
    if ptype == "tool-invocation":
        inv = data.get("toolInvocation") or {}
        return ToolInvocationPart(
            tool_call_id=str(inv.get("toolCallId", "")),
            tool_name=str(inv.get("toolName", "")),
            state=str(inv.get("state", STATE_INPUT_STREAMING)),
            input=inv.get("input", {}),
            output=inv.get("output"),
        )
    if ptype == "structured-data":
        sd = data.get("structuredData") or {}
        return StructuredDataPart(
            data_type=str(sd.get("dataType", "")),
            payload=dict(sd.get("payload") or {}),
        )
    raise ValueError(f"unknown part type: {ptype!r}")


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


@dataclass
class AccumulatedMessage:
    id: str
    role: str = "assistant"
    parts: list[Part] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    def tool_parts(self) -> list[ToolInvocationPart]:
        return [p for p in self.parts if isinstance(p, ToolInvocationPart)]

    def to_dict(self) -> dict[str, Any]:
        """The persisted shape: only id, role, parts and metadata."""
        return {
            "id": self.id,
            "role": self.role,
            "parts": [p.to_dict() for p in self.parts],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccumulatedMessage:
        return cls(
            id=str(data["id"]),
            role=str(data.get("role", "assistant")),
            parts=[part_from_dict(p) for p in data.get("parts", [])],
            metadata=dict(data.get("metadata") or {}),
        )


def user_message(text: str, message_id: str | None = None) -> AccumulatedMessage:
    """A user prompt in the same shape as accumulated assistant messages."""
    return AccumulatedMessage(
        id=message_id or str(uuid.uuid4()),
        role="user",
        parts=[TextPart(text=text)],
    )


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


class MessageAccumulator:
    """Builds an ``AccumulatedMessage`` incrementally from unified chunks."""

    def __init__(self, message_id: str, metadata: dict[str, Any] | None = None) -> None:
        self.reset(message_id, metadata)

    def reset(self, message_id: str, metadata: dict[str, Any] | None = None) -> None:
        """Discard all state and start a fresh message."""
        self._message = AccumulatedMessage(id=message_id, metadata=dict(metadata or {}))
        self._text: TextPart | None = None
        self._reasoning: ReasoningPart | None = None
        self._tools: dict[str, ToolInvocationPart] = {}

    @property
    def message(self) -> AccumulatedMessage:
        return self._message

    def process(self, chunk: UnifiedChunk) -> AccumulatedMessage:
        if isinstance(chunk, TextDelta):
            self._on_text(chunk.text)
        elif isinstance(chunk, ReasoningDelta):
            self._on_reasoning(chunk.text)
        elif isinstance(chunk, ToolStart):
            self._on_tool_start(chunk)
        elif isinstance(chunk, ToolInputDelta):
            part = self._tools.get(chunk.tool_call_id)
            if part is not None and part.state == STATE_INPUT_STREAMING:
                part.raw_input += chunk.input
        elif isinstance(chunk, ToolResult):
            self._on_tool_result(chunk)
        elif isinstance(chunk, DataChunk):
            self._message.parts.append(
                StructuredDataPart(data_type=chunk.data_type, payload=dict(chunk.payload))
            )
        elif isinstance(chunk, MessageStart):
            if chunk.session_id is not None:
                self._message.metadata["sessionId"] = chunk.session_id
        elif isinstance(chunk, MessageEnd):
            if chunk.usage is not None:
                self._message.metadata["usage"] = chunk.usage.to_dict()
        elif isinstance(chunk, ErrorChunk):
            self._close_open_parts()
            self._message.parts.append(TextPart(text=f"Error: {chunk.message}"))
        return self._message

    def process_all(self, chunks: list[UnifiedChunk]) -> AccumulatedMessage:
        for chunk in chunks:
            self.process(chunk)
        return self._message

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_text(self, text: str) -> None:
        if self._text is None:
            self._text = TextPart()
            self._message.parts.append(self._text)
        self._text.text += text

    def _on_reasoning(self, text: str) -> None:
        if self._reasoning is None:
            self._reasoning = ReasoningPart()
            self._message.parts.append(self._reasoning)
        self._reasoning.text += text

    def _on_tool_start(self, chunk: ToolStart) -> None:
        self._close_open_parts()
        if chunk.tool_call_id in self._tools:
            return
        part = ToolInvocationPart(tool_call_id=chunk.tool_call_id, tool_name=chunk.tool_name)
        self._tools[chunk.tool_call_id] = part
        self._message.parts.append(part)

    def _on_tool_result(self, chunk: ToolResult) -> None:
        part = self._tools.get(chunk.tool_call_id)
        if part is None or part.state != STATE_INPUT_STREAMING:
            return
        part.finalize_input()
        part.raw_input = ""
        part.output = chunk.output
        part.state = STATE_OUTPUT_ERROR if chunk.is_error else STATE_OUTPUT_AVAILABLE

    def _close_open_parts(self) -> None:
        self._text = None
        self._reasoning = None


# ---------------------------------------------------------------------------
# Queries over accumulated history
# ---------------------------------------------------------------------------


def _data_payloads(messages: list[AccumulatedMessage], data_type: str) -> list[dict[str, Any]]:
    payloads = []
    for message in messages:
        for part in message.parts:
            if isinstance(part, StructuredDataPart) and part.data_type == data_type:
                payload = parse_data_part(data_type, part.payload)
                if payload is not None:
                    payloads.append(payload)
    return payloads


def extract_sandbox_id(messages: list[AccumulatedMessage]) -> str | None:
    """First sandbox id announced in the conversation."""
    for payload in _data_payloads(messages, DataPartType.SANDBOX_STATUS):
        if payload.get("sandboxId"):
            return payload["sandboxId"]
    return None


def extract_preview_url(messages: list[AccumulatedMessage]) -> str | None:
    """Most recent preview URL in the conversation."""
    payloads = _data_payloads(messages, DataPartType.PREVIEW_URL)
    return payloads[-1]["url"] if payloads else None


def extract_written_files(messages: list[AccumulatedMessage]) -> list[str]:
    """Distinct written file paths in first-written order."""
    seen: dict[str, None] = {}
    for payload in _data_payloads(messages, DataPartType.FILE_WRITTEN):
        seen.setdefault(payload["path"], None)
    return list(seen)
