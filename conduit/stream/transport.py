"""
Adapts the unified chunk stream to UI transport frames.

Text and reasoning are bracketed: a ``*-start`` frame precedes the first delta
of that kind since the last tool boundary, and a matching ``*-end`` frame is
emitted when a tool starts or the stream finishes.  Start, delta and end
frames of one run share the same id.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Callable, Iterable

from conduit.stream.types import (
    DataChunk,
    ErrorChunk,
    ReasoningDelta,
    TextDelta,
    ToolInputDelta,
    ToolResult,
    ToolStart,
    UnifiedChunk,
)

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    type: str
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **self.fields}


def _new_id() -> str:
    return uuid.uuid4().hex


class FrameEncoder:
    """Stateful chunk-to-frame translation for one stream."""

    def __init__(self, generate_id: Callable[[], str] | None = None) -> None:
        self._generate_id = generate_id or _new_id
        self._text_id: str | None = None
        self._reasoning_id: str | None = None

    def push(self, chunk: UnifiedChunk) -> list[Frame]:
        frames: list[Frame] = []

        if isinstance(chunk, TextDelta):
            if self._text_id is None:
                self._text_id = self._generate_id()
                frames.append(Frame("text-start", {"id": self._text_id}))
            frames.append(Frame("text-delta", {"id": self._text_id, "delta": chunk.text}))

        elif isinstance(chunk, ReasoningDelta):
            if self._reasoning_id is None:
                self._reasoning_id = self._generate_id()
                frames.append(Frame("reasoning-start", {"id": self._reasoning_id}))
            frames.append(
                Frame("reasoning-delta", {"id": self._reasoning_id, "delta": chunk.text})
            )

        elif isinstance(chunk, ToolStart):
            frames.extend(self.finish())
            frames.append(
                Frame(
                    "tool-input-start",
                    {"toolCallId": chunk.tool_call_id, "toolName": chunk.tool_name},
                )
            )

        elif isinstance(chunk, ToolInputDelta):
            frames.append(
                Frame(
                    "tool-input-delta",
                    {"toolCallId": chunk.tool_call_id, "inputTextDelta": chunk.input},
                )
            )

        elif isinstance(chunk, ToolResult):
            if chunk.is_error:
                frames.append(
                    Frame(
                        "tool-output-error",
                        {"toolCallId": chunk.tool_call_id, "errorText": chunk.output},
                    )
                )
            else:
                frames.append(
                    Frame(
                        "tool-output-available",
                        {"toolCallId": chunk.tool_call_id, "output": chunk.output},
                    )
                )

        elif isinstance(chunk, DataChunk):
            frames.append(Frame(f"data-{chunk.data_type}", {"data": chunk.payload}))

        elif isinstance(chunk, ErrorChunk):
            frames.append(Frame("error", {"errorText": chunk.message}))

        # message-start / message-end carry no frame
        return frames

    def finish(self) -> list[Frame]:
        """Close any open text/reasoning runs."""
        frames: list[Frame] = []
        if self._text_id is not None:
            frames.append(Frame("text-end", {"id": self._text_id}))
            self._text_id = None
        if self._reasoning_id is not None:
            frames.append(Frame("reasoning-end", {"id": self._reasoning_id}))
            self._reasoning_id = None
        return frames


def encode_frames(
    chunks: Iterable[UnifiedChunk],
    generate_id: Callable[[], str] | None = None,
) -> list[Frame]:
    """Translate a finite chunk sequence, closing open runs at the end."""
    encoder = FrameEncoder(generate_id)
    frames: list[Frame] = []
    for chunk in chunks:
        frames.extend(encoder.push(chunk))
    frames.extend(encoder.finish())
    return frames


async def adapt(
    chunks: AsyncIterable[UnifiedChunk],
    generate_id: Callable[[], str] | None = None,
) -> AsyncIterator[Frame]:
    """
    Stream frames for *chunks*.

    An exception from the upstream producer does not propagate: open runs
    are closed, a single ``error`` frame is emitted and the adapter returns.
    """
    encoder = FrameEncoder(generate_id)
    try:
        async for chunk in chunks:
            for frame in encoder.push(chunk):
                yield frame
    except Exception as exc:
        logger.warning("Chunk stream failed: %s", exc)
        for frame in encoder.finish():
            yield frame
        yield Frame("error", {"errorText": str(exc) or type(exc).__name__})
        return

    for frame in encoder.finish():
        yield frame
