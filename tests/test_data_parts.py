"""Tests for structured data part schemas."""

from __future__ import annotations

import pytest

from conduit.stream.data_parts import agent_status, parse_data_part, validate_data_part
from conduit.types import DataPartType


class TestValidate:
    @pytest.mark.parametrize(
        "data_type,payload",
        [
            (DataPartType.AGENT_STATUS, {"status": "thinking", "message": "Agent initialized"}),
            (DataPartType.SANDBOX_STATUS, {"sandboxId": "sb-1", "status": "ready"}),
            (DataPartType.FILE_WRITTEN, {"path": "/a.py"}),
            (
                DataPartType.COMMAND_OUTPUT,
                {"command": "ls", "output": "x", "stream": "stderr", "exitCode": 1},
            ),
            (DataPartType.PREVIEW_URL, {"url": "http://localhost:3000", "port": 3000}),
        ],
    )
    def test_valid(self, data_type, payload):
        assert validate_data_part(data_type, payload) == (True, None)

    @pytest.mark.parametrize(
        "data_type,payload",
        [
            (DataPartType.AGENT_STATUS, {"status": "sleeping"}),
            (DataPartType.FILE_WRITTEN, {}),
            (DataPartType.COMMAND_OUTPUT, {"command": "ls", "output": "x", "stream": "stdin"}),
            (DataPartType.PREVIEW_URL, {"url": "http://x", "port": "3000"}),
        ],
    )
    def test_invalid(self, data_type, payload):
        ok, msg = validate_data_part(data_type, payload)
        assert ok is False
        assert msg

    def test_unknown_type_passes(self):
        assert validate_data_part("custom-thing", {"anything": 1}) == (True, None)


class TestParse:
    def test_returns_payload(self):
        payload = {"path": "/a"}
        assert parse_data_part(DataPartType.FILE_WRITTEN, payload) is payload

    def test_invalid_is_none(self):
        assert parse_data_part(DataPartType.FILE_WRITTEN, {"path": 3}) is None

    def test_non_dict_is_none(self):
        assert parse_data_part("custom", "text") is None


def test_agent_status_payload():
    assert agent_status("done") == {"status": "done"}
    assert agent_status("tool-use", "Running Bash...") == {
        "status": "tool-use",
        "message": "Running Bash...",
    }
