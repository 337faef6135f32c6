"""Tests for conduit.stream.tool_tracker."""

from __future__ import annotations

import json

from conduit.stream.tool_tracker import (
    DEFAULT_PREVIEW_PORT,
    ToolCallTracker,
    decode_input,
    derive_data_parts,
)
from conduit.stream.types import DataChunk


def _payloads(chunks: list[DataChunk], data_type: str) -> list[dict]:
    return [c.payload for c in chunks if c.data_type == data_type]


class TestTracker:
    def test_accumulates_fragments(self):
        tracker = ToolCallTracker()
        tracker.start("t1", "Write")
        tracker.record_input("t1", '{"file_path": ')
        tracker.record_input("t1", '"/a.py"}')
        assert tracker.resolve("t1") == ("Write", '{"file_path": "/a.py"}')

    def test_resolve_forgets_call(self):
        tracker = ToolCallTracker()
        tracker.start("t1", "Read")
        assert "t1" in tracker
        tracker.resolve("t1")
        assert "t1" not in tracker
        assert tracker.resolve("t1") is None

    def test_unknown_ids_ignored(self):
        tracker = ToolCallTracker()
        tracker.record_input("ghost", "x")
        assert tracker.resolve("ghost") is None
        assert len(tracker) == 0

    def test_pending_in_start_order(self):
        tracker = ToolCallTracker()
        tracker.start("b", "Read")
        tracker.start("a", "Read")
        assert tracker.pending() == ["b", "a"]
        tracker.reset()
        assert tracker.pending() == []

    def test_structured_data_resolves(self):
        tracker = ToolCallTracker()
        tracker.start("t1", "Write")
        tracker.record_input("t1", json.dumps({"file_path": "/x.txt"}))
        parts = tracker.structured_data("t1", "ok")
        assert parts == [DataChunk("file-written", {"path": "/x.txt"})]
        assert tracker.structured_data("t1", "ok") == []


class TestDecodeInput:
    def test_empty(self):
        assert decode_input("") == {}

    def test_malformed(self):
        assert decode_input('{"a": ') == {}

    def test_non_object(self):
        assert decode_input("[1]") == {}


class TestFileWritten:
    def test_path_from_input(self):
        parts = derive_data_parts("Write", '{"file_path": "/src/app.py"}', "done")
        assert _payloads(parts, "file-written") == [{"path": "/src/app.py"}]

    def test_path_key(self):
        parts = derive_data_parts("mcp__sandbox__write_file", '{"path": "/b.txt"}', "")
        assert _payloads(parts, "file-written") == [{"path": "/b.txt"}]

    def test_path_from_output(self):
        parts = derive_data_parts("Edit", "", "Wrote 120 bytes to /tmp/out.txt")
        assert _payloads(parts, "file-written") == [{"path": "/tmp/out.txt"}]

    def test_no_path_no_part(self):
        assert derive_data_parts("Write", "", "done") == []

    def test_failed_write_yields_nothing(self):
        assert derive_data_parts("Write", '{"file_path": "/a"}', "denied", is_error=True) == []


class TestCommandOutput:
    def test_plain_output_is_stdout(self):
        parts = derive_data_parts("Bash", '{"command": "ls"}', "a.py\nb.py\n")
        assert _payloads(parts, "command-output") == [
            {"command": "ls", "output": "a.py\nb.py", "stream": "stdout"}
        ]

    def test_split_streams_and_exit_code(self):
        output = "Exit code: 2\nstdout:\nbuilding\nstderr:\nfailed here"
        parts = derive_data_parts(
            "mcp__sandbox__run_command", '{"cmd": "npm", "args": ["run", "build"]}', output, True
        )
        assert _payloads(parts, "command-output") == [
            {"command": "npm run build", "output": "building", "stream": "stdout", "exitCode": 2},
            {"command": "npm run build", "output": "failed here", "stream": "stderr", "exitCode": 2},
        ]

    def test_empty_streams_skipped(self):
        parts = derive_data_parts("Bash", '{"command": "true"}', "Exit code: 0\nstdout:\n\nstderr:\n")
        assert parts == []

    def test_command_fallback(self):
        parts = derive_data_parts("Bash", "", "hi")
        assert parts[0].payload["command"] == "command"


class TestPreviewUrl:
    def test_url_and_port(self):
        parts = derive_data_parts(
            "mcp__sandbox__get_preview_url", '{"port": 5173}', "Preview URL: https://x.dev/app"
        )
        assert _payloads(parts, "preview-url") == [{"url": "https://x.dev/app", "port": 5173}]

    def test_default_port(self):
        parts = derive_data_parts("get_preview_url", "", "Preview URL: http://localhost:3000")
        assert parts[0].payload["port"] == DEFAULT_PREVIEW_PORT

    def test_no_url(self):
        assert derive_data_parts("get_preview_url", "", "not ready") == []

    def test_other_tools_yield_nothing(self):
        assert derive_data_parts("Read", '{"file_path": "/a"}', "contents") == []
