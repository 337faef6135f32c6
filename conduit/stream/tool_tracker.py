"""
Tracks in-flight tool calls for one execution.

Mappers announce a call with ``start``, stream argument fragments through
``record_input`` and hand the call back with ``resolve`` once the backend
reports its outcome.  The resolved name and arguments decide which structured
``data`` chunks accompany the result (``derive_data_parts``).

Unknown ids are ignored everywhere: a backend may resolve calls whose start
we never saw, e.g. after a resumed session.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from conduit.stream.types import DataChunk
from conduit.types import DataPartType

DEFAULT_PREVIEW_PORT = 3000

WRITE_TOOL_NAMES = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
COMMAND_TOOL_NAMES = frozenset({"Bash"})

_WROTE_TO_RE = re.compile(r"\bto\s+(/\S+)")
_EXIT_CODE_RE = re.compile(r"Exit code:\s*(-?\d+)")
_STDOUT_RE = re.compile(r"stdout:\n(.*?)(?=\nstderr:|\Z)", re.S)
_STDERR_RE = re.compile(r"stderr:\n(.*)\Z", re.S)
_PREVIEW_RE = re.compile(r"Preview URL:\s*(https?://\S+)")


@dataclass
class ToolCallRecord:
    id: str
    name: str
    accumulated_input: str = ""


class ToolCallTracker:
    """Map from tool-call id to its name and accumulated input."""

    def __init__(self) -> None:
        self._calls: dict[str, ToolCallRecord] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, call_id: str, name: str) -> None:
        self._calls[call_id] = ToolCallRecord(id=call_id, name=name)

    def record_input(self, call_id: str, fragment: str) -> None:
        record = self._calls.get(call_id)
        if record is not None:
            record.accumulated_input += fragment

    def resolve(self, call_id: str) -> tuple[str, str] | None:
        """
        Forget the call and return ``(name, accumulated_input)``.

        Returns ``None`` for an id that was never started (or already
        resolved).
        """
        record = self._calls.pop(call_id, None)
        if record is None:
            return None
        return record.name, record.accumulated_input

    def structured_data(
        self, call_id: str, output: str, is_error: bool = False
    ) -> list[DataChunk]:
        """Resolve *call_id* and return the data chunks its outcome implies."""
        resolved = self.resolve(call_id)
        if resolved is None:
            return []
        name, raw_input = resolved
        return derive_data_parts(name, raw_input, output, is_error)

    def pending(self) -> list[str]:
        """Ids of calls that were started but not resolved, in start order."""
        return list(self._calls)

    def reset(self) -> None:
        self._calls.clear()

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)


# ---------------------------------------------------------------------------
# Structured data derived from resolved calls
# ---------------------------------------------------------------------------


def decode_input(raw_input: str) -> dict[str, Any]:
    """Decode accumulated tool arguments, ``{}`` when absent or malformed."""
    if not raw_input:
        return {}
    try:
        decoded = json.loads(raw_input)
    except (json.JSONDecodeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def is_write_tool(name: str) -> bool:
    return name in WRITE_TOOL_NAMES or "write_file" in name


def is_command_tool(name: str) -> bool:
    return name in COMMAND_TOOL_NAMES or "run_command" in name


def is_preview_tool(name: str) -> bool:
    return "get_preview_url" in name


def derive_data_parts(
    name: str,
    raw_input: str,
    output: str,
    is_error: bool = False,
) -> list[DataChunk]:
    """
    Structured side-channel events implied by a finished tool call.

    File writes yield ``file-written``; command execution yields one
    ``command-output`` per non-empty stream; preview lookups yield
    ``preview-url``.  Failed writes and lookups yield nothing.
    """
    args = decode_input(raw_input)

    if is_write_tool(name):
        if is_error:
            return []
        path = args.get("file_path") or args.get("path")
        if not path:
            match = _WROTE_TO_RE.search(output)
            path = match.group(1) if match else None
        if not path:
            return []
        return [DataChunk(DataPartType.FILE_WRITTEN, {"path": str(path)})]

    if is_command_tool(name):
        return _command_output_parts(args, output)

    if is_preview_tool(name):
        if is_error:
            return []
        match = _PREVIEW_RE.search(output)
        if not match:
            return []
        port = args.get("port", DEFAULT_PREVIEW_PORT)
        if not isinstance(port, int):
            port = DEFAULT_PREVIEW_PORT
        return [DataChunk(DataPartType.PREVIEW_URL, {"url": match.group(1), "port": port})]

    return []


def _command_text(args: dict[str, Any]) -> str:
    command = args.get("command")
    if isinstance(command, str) and command:
        return command
    cmd = args.get("cmd")
    if isinstance(cmd, str) and cmd:
        extra = args.get("args") or []
        return " ".join([cmd, *(str(a) for a in extra)])
    return "command"


def _command_output_parts(args: dict[str, Any], output: str) -> list[DataChunk]:
    command = _command_text(args)

    exit_match = _EXIT_CODE_RE.search(output)
    exit_code = int(exit_match.group(1)) if exit_match else None

    if "stdout:\n" in output or "stderr:\n" in output:
        stdout_match = _STDOUT_RE.search(output)
        stderr_match = _STDERR_RE.search(output)
        streams = [
            ("stdout", stdout_match.group(1).strip() if stdout_match else ""),
            ("stderr", stderr_match.group(1).strip() if stderr_match else ""),
        ]
    else:
        streams = [("stdout", output.strip())]

    parts: list[DataChunk] = []
    for stream, text in streams:
        if not text:
            continue
        payload: dict[str, Any] = {"command": command, "output": text, "stream": stream}
        if exit_code is not None:
            payload["exitCode"] = exit_code
        parts.append(DataChunk(DataPartType.COMMAND_OUTPUT, payload))
    return parts
