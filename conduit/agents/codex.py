"""
Codex CLI event mapper (``codex exec --json``).

Codex reports lifecycle events rather than token deltas: a thread, one turn,
and ``item.started`` / ``item.completed`` pairs for every message, reasoning
summary and tool action.  Text therefore arrives in whole-item pieces.

``message-end`` is not produced here.  Usage from ``turn.completed`` is
accumulated on the turn state and the turn driver closes the message.
"""

from __future__ import annotations

import logging
from typing import Any

from conduit.agents.state import TurnState
from conduit.stream.data_parts import agent_status
from conduit.stream.types import (
    DataChunk,
    ErrorChunk,
    MessageStart,
    ReasoningDelta,
    TextDelta,
    UnifiedChunk,
)
from conduit.types import DataPartType, ErrorCode

logger = logging.getLogger(__name__)

_CREATE_KINDS = ("create", "add")


def map_codex_event(event: dict[str, Any], state: TurnState) -> list[UnifiedChunk]:
    """Translate one Codex JSONL record."""
    etype = event.get("type")

    if etype == "thread.started":
        thread_id = event.get("thread_id")
        if thread_id:
            state.session_id = thread_id
        return [
            MessageStart(id=thread_id or "codex", session_id=thread_id),
            _status("thinking", "Codex started"),
        ]

    if etype == "turn.started":
        return [_status("thinking", "Processing...")]

    if etype in ("item.started", "item.completed"):
        item = event.get("item")
        if not isinstance(item, dict) or not item.get("id"):
            return []
        phase = "started" if etype == "item.started" else "completed"
        return _item(item, phase, state)

    if etype == "turn.completed":
        usage = event.get("usage") or {}
        state.add_usage(
            int(usage.get("input_tokens") or 0) + int(usage.get("cached_input_tokens") or 0),
            int(usage.get("output_tokens") or 0),
        )
        state.saw_terminal = True
        return [_status("done", "Turn completed")]

    if etype == "turn.failed":
        state.saw_terminal = True
        message = _error_text(event.get("error")) or "Turn failed"
        return [ErrorChunk(message=message, code=ErrorCode.TURN_FAILED)]

    if etype == "error":
        state.saw_terminal = True
        message = (
            _error_text(event.get("error")) or _error_text(event.get("message")) or "Codex error"
        )
        return [ErrorChunk(message=message, code=ErrorCode.CODEX_ERROR)]

    return []


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def _item(item: dict[str, Any], phase: str, state: TurnState) -> list[UnifiedChunk]:
    itype = item.get("type")
    item_id = str(item["id"])
    completed = phase == "completed"

    if itype == "agent_message":
        text = item.get("text")
        return [TextDelta(text=text)] if completed and text else []

    if itype == "reasoning":
        text = item.get("text")
        return [ReasoningDelta(text=text)] if completed and text else []

    if itype == "command_execution":
        return _command(item_id, item, completed, state)

    if itype == "file_change":
        return _file_change(item_id, item, completed, state)

    if itype == "web_search":
        if not completed:
            query = item.get("query") or "..."
            return [
                *state.start_tool(item_id, "WebSearch"),
                _status("tool-use", f"Searching: {query}"),
            ]
        return state.finish_tool(item_id, "Search completed", fallback_name="WebSearch")

    if itype == "mcp_tool_call":
        name = item.get("tool_name") or item.get("tool") or "mcp_tool"
        if not completed:
            chunks = state.start_tool(item_id, name)
            arguments = item.get("arguments")
            if arguments is not None:
                chunks.extend(state.tool_input(item_id, arguments))
            return chunks
        return state.finish_tool(
            item_id,
            "Tool call completed",
            is_error=item.get("status") == "failed",
            fallback_name=name,
        )

    if itype == "plan_update":
        if completed and item.get("plan"):
            return [_status("thinking", "Plan updated")]
        return []

    logger.debug("Ignoring codex item type %s", itype)
    return []


def _command(
    item_id: str, item: dict[str, Any], completed: bool, state: TurnState
) -> list[UnifiedChunk]:
    command = str(item.get("command") or "")
    if not completed:
        return [
            *state.start_tool(item_id, "Bash"),
            *state.tool_input(item_id, {"command": command}),
            _status("tool-use", f"Running: {command}"),
        ]

    output = item.get("aggregated_output") or item.get("output") or ""
    exit_code = item.get("exit_code")
    is_error = (exit_code is not None and exit_code != 0) or item.get("status") == "failed"

    chunks = state.finish_tool(
        item_id,
        output or f"Exit code: {exit_code if exit_code is not None else 0}",
        is_error=is_error,
        fallback_name="Bash",
        derive_data=False,
    )
    if chunks and output:
        payload: dict[str, Any] = {"command": command, "output": output, "stream": "stdout"}
        if isinstance(exit_code, int):
            payload["exitCode"] = exit_code
        chunks.append(DataChunk(DataPartType.COMMAND_OUTPUT, payload))
    return chunks


def _file_change(
    item_id: str, item: dict[str, Any], completed: bool, state: TurnState
) -> list[UnifiedChunk]:
    changes = _changes(item)
    first_kind = changes[0][1] if changes else ""
    name = "Write" if first_kind in _CREATE_KINDS else "Edit"

    if not completed:
        return state.start_tool(item_id, name)

    if item_id in state.resolved_tools:
        return []
    failed = item.get("status") == "failed"
    chunks: list[UnifiedChunk] = []
    # tool-start must precede the file-written parts for an unseen item.
    chunks.extend(state.start_tool(item_id, name))
    if not failed:
        for path, _ in changes:
            chunks.append(DataChunk(DataPartType.FILE_WRITTEN, {"path": path}))
    summary = "\n".join(f"File {kind or 'modified'}: {path}" for path, kind in changes)
    chunks.extend(
        state.finish_tool(
            item_id,
            summary or "File modified",
            is_error=failed,
            fallback_name=name,
            derive_data=False,
        )
    )
    return chunks


def _changes(item: dict[str, Any]) -> list[tuple[str, str]]:
    """``(path, kind)`` pairs from either the list or the single-path form."""
    changes = item.get("changes")
    if isinstance(changes, list):
        pairs = []
        for change in changes:
            if isinstance(change, dict) and change.get("path"):
                pairs.append((str(change["path"]), _kind(change.get("kind"))))
        return pairs
    if item.get("path"):
        return [(str(item["path"]), _kind(item.get("change_type")))]
    return []


def _kind(raw: Any) -> str:
    if isinstance(raw, dict):
        raw = raw.get("type")
    return str(raw) if raw else ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _status(status: str, message: str) -> DataChunk:
    return DataChunk(DataPartType.AGENT_STATUS, agent_status(status, message))


def _error_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        return str(raw.get("message") or "")
    return ""
