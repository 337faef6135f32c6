"""Tests for the conduit command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from conduit.cli.app import app
from tests.mock_events import (
    assistant,
    claude_init,
    claude_streamed_turn,
    codex_item,
    codex_thread,
    codex_turn_completed,
    jsonl,
    result_success,
    tool_result,
    tool_use_block,
)

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.delenv("CONDUIT_AGENT", raising=False)
    path = tmp_path / "conduit.yaml"
    path.write_text(yaml.safe_dump({"session": {"history_db": str(tmp_path / "h.db")}}))
    return path


@pytest.fixture
def claude_transcript(tmp_path: Path) -> Path:
    events = [
        claude_init("sess-cli"),
        assistant("m1", [
            {"type": "text", "text": "Writing it."},
            tool_use_block("t1", "Write", {"file_path": "/srv/app.py", "content": "print()"}),
        ]),
        tool_result("t1", "File created"),
        assistant("m2", [{"type": "text", "text": "All done."}]),
        result_success(7, 3),
    ]
    path = tmp_path / "claude.jsonl"
    path.write_text("\n".join(jsonl(events)) + "\n")
    return path


def _invoke(config_path: Path, *args: str):
    return runner.invoke(app, ["--config", str(config_path), *args])


class TestBasics:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "conduit-core v0.1.0" in result.output

    def test_agents_list(self, config_path: Path):
        result = _invoke(config_path, "agents", "list")
        assert result.exit_code == 0
        assert "claude-agent" in result.output
        assert "codex" in result.output
        assert "(default)" in result.output


class TestReplay:
    def test_message_format(self, config_path: Path, claude_transcript: Path):
        result = _invoke(config_path, "replay", str(claude_transcript), "--format", "message")
        assert result.exit_code == 0, result.output
        message = json.loads(result.output)
        assert [p["type"] for p in message["parts"]] == [
            "structured-data", "text", "tool-invocation", "structured-data", "text",
        ]
        assert message["parts"][0]["structuredData"]["dataType"] == "agent-status"
        assert message["parts"][3]["structuredData"]["payload"] == {"path": "/srv/app.py"}
        assert message["parts"][2]["toolInvocation"]["input"]["file_path"] == "/srv/app.py"
        assert message["metadata"]["sessionId"] == "sess-cli"
        assert message["metadata"]["usage"] == {"inputTokens": 7, "outputTokens": 3}

    def test_ndjson_format_is_bracketed(self, config_path: Path, claude_transcript: Path):
        result = _invoke(
            config_path, "replay", str(claude_transcript), "--format", "ndjson", "--chunk-size", "5"
        )
        assert result.exit_code == 0, result.output
        records = [json.loads(line) for line in result.output.splitlines() if line.strip()]
        assert records[0]["type"] == "message-start"
        assert records[-1]["type"] == "message-end"

    def test_frames_format(self, config_path: Path, claude_transcript: Path):
        result = _invoke(config_path, "replay", str(claude_transcript), "--format", "frames")
        assert result.exit_code == 0, result.output
        types = [json.loads(line)["type"] for line in result.output.splitlines() if line.strip()]
        assert types[0] == "data-agent-status"
        assert "tool-input-start" in types
        assert "data-file-written" in types
        assert types[-1] == "text-end"

    def test_sdk_replay(self, config_path: Path, tmp_path: Path):
        path = tmp_path / "sdk.jsonl"
        path.write_text("\n".join(jsonl(claude_streamed_turn(["via ", "sdk"]))) + "\n")
        result = _invoke(config_path, "replay", str(path), "--agent", "claude-agent", "--format", "message")
        assert result.exit_code == 0, result.output
        parts = json.loads(result.output)["parts"]
        assert [p for p in parts if p["type"] == "text"] == [{"type": "text", "text": "via sdk"}]

    def test_codex_replay(self, config_path: Path, tmp_path: Path):
        path = tmp_path / "codex.jsonl"
        path.write_text("\n".join(jsonl([
            codex_thread("th-1"),
            codex_item("completed", {"id": "i1", "type": "agent_message", "text": "hi"}),
            codex_turn_completed(4, 0, 2),
        ])) + "\n")
        result = _invoke(config_path, "replay", str(path), "--agent", "codex", "--format", "message")
        assert result.exit_code == 0, result.output
        message = json.loads(result.output)
        assert message["metadata"]["usage"] == {"inputTokens": 4, "outputTokens": 2}

    def test_unknown_format(self, config_path: Path, claude_transcript: Path):
        result = _invoke(config_path, "replay", str(claude_transcript), "--format", "xml")
        assert result.exit_code == 1

    def test_unknown_agent(self, config_path: Path, claude_transcript: Path):
        result = _invoke(config_path, "replay", str(claude_transcript), "--agent", "gemini")
        assert result.exit_code == 1
        assert "Unknown agent" in result.output


class TestConfigCommands:
    def test_validate_ok(self, config_path: Path):
        result = _invoke(config_path, "config", "validate")
        assert result.exit_code == 0
        assert "Config is valid" in result.output

    def test_validate_failure(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"agents": {"default": "gemini"}}))
        result = runner.invoke(app, ["--config", str(path), "config", "validate"])
        assert result.exit_code == 1
        assert "agents.default" in result.output

    def test_bad_profile(self, config_path: Path):
        result = runner.invoke(app, ["--config", str(config_path), "--profile", "nope", "config", "show"])
        assert result.exit_code == 1
        assert "Config error" in result.output


class TestSessions:
    def test_empty_list(self, config_path: Path):
        result = _invoke(config_path, "sessions", "list")
        assert result.exit_code == 0
        assert "No conversations found" in result.output

    def test_show_missing(self, config_path: Path):
        result = _invoke(config_path, "sessions", "show", "nope")
        assert result.exit_code == 1

    def test_delete_missing(self, config_path: Path):
        result = _invoke(config_path, "sessions", "delete", "nope")
        assert result.exit_code == 1
