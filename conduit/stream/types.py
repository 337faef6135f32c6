"""
Unified chunk protocol.

Every agent backend is translated into this one vocabulary.  Chunks are plain
dataclasses; ``to_dict`` / ``chunk_from_dict`` convert to and from the
camelCase wire shape used by the NDJSON stream.

Ordering rules for one execution:

  - ``MessageStart`` comes first, exactly once.
  - ``MessageEnd`` comes last, exactly once.
  - At most one ``ErrorChunk``; if present it precedes ``MessageEnd``.
  - Every ``ToolResult`` id was announced earlier by a ``ToolStart``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"inputTokens": self.input_tokens, "outputTokens": self.output_tokens}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Usage:
        return cls(
            input_tokens=int(data.get("inputTokens", 0) or 0),
            output_tokens=int(data.get("outputTokens", 0) or 0),
        )


@dataclass
class MessageStart:
    id: str
    session_id: str | None = None
    role: str = "assistant"

    type: ClassVar[str] = "message-start"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type, "id": self.id, "role": self.role}
        if self.session_id is not None:
            d["sessionId"] = self.session_id
        return d


@dataclass
class TextDelta:
    text: str

    type: ClassVar[str] = "text-delta"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ReasoningDelta:
    text: str

    type: ClassVar[str] = "reasoning-delta"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolStart:
    tool_call_id: str
    tool_name: str

    type: ClassVar[str] = "tool-start"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
        }


@dataclass
class ToolInputDelta:
    tool_call_id: str
    input: str

    type: ClassVar[str] = "tool-input-delta"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "toolCallId": self.tool_call_id, "input": self.input}


@dataclass
class ToolResult:
    tool_call_id: str
    output: str
    is_error: bool = False

    type: ClassVar[str] = "tool-result"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.type,
            "toolCallId": self.tool_call_id,
            "output": self.output,
        }
        if self.is_error:
            d["isError"] = True
        return d


@dataclass
class DataChunk:
    """Out-of-band structured event (file written, command output, ...)."""

    data_type: str
    payload: dict[str, Any] = field(default_factory=dict)

    type: ClassVar[str] = "data"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "dataType": self.data_type, "payload": self.payload}


@dataclass
class MessageEnd:
    usage: Usage | None = None

    type: ClassVar[str] = "message-end"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type}
        if self.usage is not None:
            d["usage"] = self.usage.to_dict()
        return d


@dataclass
class ErrorChunk:
    message: str
    code: str | None = None

    type: ClassVar[str] = "error"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.code is not None:
            d["code"] = self.code
        return d


UnifiedChunk = Union[
    MessageStart,
    TextDelta,
    ReasoningDelta,
    ToolStart,
    ToolInputDelta,
    ToolResult,
    DataChunk,
    MessageEnd,
    ErrorChunk,
]

CHUNK_TYPES: dict[str, type] = {
    cls.type: cls
    for cls in (
        MessageStart,
        TextDelta,
        ReasoningDelta,
        ToolStart,
        ToolInputDelta,
        ToolResult,
        DataChunk,
        MessageEnd,
        ErrorChunk,
    )
}


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def chunk_from_dict(data: dict[str, Any]) -> UnifiedChunk:
    """
    Rebuild a chunk from its wire dict.

    Raises ``ValueError`` for an unknown ``type`` or a missing required field.
    """
    ctype = data.get("type")
    try:
        if ctype == "message-start":
            return MessageStart(id=str(data["id"]), session_id=data.get("sessionId"))
        if ctype == "text-delta":
            return TextDelta(text=str(data["text"]))
        if ctype == "reasoning-delta":
            return ReasoningDelta(text=str(data["text"]))
        if ctype == "tool-start":
            return ToolStart(
                tool_call_id=str(data["toolCallId"]),
                tool_name=str(data["toolName"]),
            )
        if ctype == "tool-input-delta":
            return ToolInputDelta(
                tool_call_id=str(data["toolCallId"]),
                input=str(data["input"]),
            )
        if ctype == "tool-result":
            return ToolResult(
                tool_call_id=str(data["toolCallId"]),
                output=str(data.get("output", "")),
                is_error=bool(data.get("isError", False)),
            )
        if ctype == "data":
            return DataChunk(
                data_type=str(data["dataType"]),
                payload=dict(data.get("payload") or {}),
            )
        if ctype == "message-end":
            usage = data.get("usage")
            return MessageEnd(usage=Usage.from_dict(usage) if usage else None)
        if ctype == "error":
            return ErrorChunk(message=str(data["message"]), code=data.get("code"))
    except KeyError as exc:
        raise ValueError(f"chunk {ctype!r} is missing field {exc.args[0]!r}") from None
    raise ValueError(f"unknown chunk type: {ctype!r}")


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def is_text_delta(chunk: object) -> bool:
    return isinstance(chunk, TextDelta)


def is_tool_start(chunk: object) -> bool:
    return isinstance(chunk, ToolStart)


def is_tool_result(chunk: object) -> bool:
    return isinstance(chunk, ToolResult)


def is_data_chunk(chunk: object) -> bool:
    return isinstance(chunk, DataChunk)


def is_message_end(chunk: object) -> bool:
    return isinstance(chunk, MessageEnd)


def is_error(chunk: object) -> bool:
    return isinstance(chunk, ErrorChunk)
