"""Tests for the chunk-to-frame transport adapter."""

from __future__ import annotations

import itertools

import pytest

from conduit.stream.transport import FrameEncoder, adapt, encode_frames
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
)
from tests.mock_events import collect


def _ids():
    counter = itertools.count(1)
    return lambda: f"id{next(counter)}"


def _dicts(frames) -> list[dict]:
    return [f.to_dict() for f in frames]


class TestEncode:
    def test_text_bracketing(self):
        frames = encode_frames(
            [MessageStart("m"), TextDelta("a"), TextDelta("b"), MessageEnd()], _ids()
        )
        assert _dicts(frames) == [
            {"type": "text-start", "id": "id1"},
            {"type": "text-delta", "id": "id1", "delta": "a"},
            {"type": "text-delta", "id": "id1", "delta": "b"},
            {"type": "text-end", "id": "id1"},
        ]

    def test_tool_closes_text_and_reopens(self):
        frames = encode_frames(
            [
                TextDelta("before"),
                ToolStart("t1", "Bash"),
                ToolInputDelta("t1", '{"command": "ls"}'),
                ToolResult("t1", "a.py"),
                TextDelta("after"),
            ],
            _ids(),
        )
        assert [f.type for f in frames] == [
            "text-start",
            "text-delta",
            "text-end",
            "tool-input-start",
            "tool-input-delta",
            "tool-output-available",
            "text-start",
            "text-delta",
            "text-end",
        ]
        assert frames[0].fields["id"] != frames[6].fields["id"]
        assert frames[3].to_dict() == {"type": "tool-input-start", "toolCallId": "t1", "toolName": "Bash"}
        assert frames[4].fields == {"toolCallId": "t1", "inputTextDelta": '{"command": "ls"}'}
        assert frames[5].fields == {"toolCallId": "t1", "output": "a.py"}

    def test_reasoning_id_consistent(self):
        frames = encode_frames(
            [ReasoningDelta("x"), ReasoningDelta("y"), ToolStart("t", "Read")], _ids()
        )
        reasoning = [f for f in frames if f.type.startswith("reasoning")]
        assert [f.type for f in reasoning] == ["reasoning-start", "reasoning-delta", "reasoning-delta", "reasoning-end"]
        assert {f.fields["id"] for f in reasoning} == {"id1"}

    def test_tool_error(self):
        frames = encode_frames([ToolResult("t1", "denied", is_error=True)])
        assert frames[0].to_dict() == {"type": "tool-output-error", "toolCallId": "t1", "errorText": "denied"}

    def test_data_and_error(self):
        frames = encode_frames(
            [DataChunk("preview-url", {"url": "http://x", "port": 1}), ErrorChunk("bad", "auth")]
        )
        assert _dicts(frames) == [
            {"type": "data-preview-url", "data": {"url": "http://x", "port": 1}},
            {"type": "error", "errorText": "bad"},
        ]

    def test_bracket_only_stream_has_no_frames(self):
        assert encode_frames([MessageStart("m"), MessageEnd()]) == []

    def test_finish_idempotent(self):
        encoder = FrameEncoder(_ids())
        encoder.push(TextDelta("a"))
        assert [f.type for f in encoder.finish()] == ["text-end"]
        assert encoder.finish() == []


class TestAdapt:
    @pytest.mark.asyncio
    async def test_streams_and_closes(self):
        async def chunks():
            yield MessageStart("m")
            yield TextDelta("hi")
            yield MessageEnd()

        frames = await collect(adapt(chunks(), _ids()))
        assert [f.type for f in frames] == ["text-start", "text-delta", "text-end"]

    @pytest.mark.asyncio
    async def test_upstream_exception_becomes_error_frame(self):
        async def chunks():
            yield TextDelta("partial")
            raise RuntimeError("connection reset")

        frames = await collect(adapt(chunks(), _ids()))
        assert _dicts(frames) == [
            {"type": "text-start", "id": "id1"},
            {"type": "text-delta", "id": "id1", "delta": "partial"},
            {"type": "text-end", "id": "id1"},
            {"type": "error", "errorText": "connection reset"},
        ]

    @pytest.mark.asyncio
    async def test_exception_without_message_uses_class_name(self):
        async def chunks():
            raise ValueError()
            yield  # pragma: no cover

        frames = await collect(adapt(chunks()))
        assert _dicts(frames) == [{"type": "error", "errorText": "ValueError"}]
