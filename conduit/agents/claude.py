"""
Claude event mappers.

Both the Claude Code CLI (``--output-format stream-json``) and the Claude
Agent SDK emit the same message vocabulary:

  - ``system`` (subtype ``init``) announces the session.
  - ``stream_event`` wraps raw Messages API streaming events when partial
    messages are enabled.
  - ``assistant`` carries the complete content blocks of one API message.
  - ``user`` carries ``tool_result`` blocks.
  - ``result`` closes the run with usage and an outcome subtype.

With partial messages on, every ``assistant`` event repeats content that
already arrived as ``stream_event`` deltas.  Batch content is therefore
dropped for any message that was streamed.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from conduit.agents.state import TurnState
from conduit.stream.data_parts import agent_status
from conduit.stream.types import (
    DataChunk,
    ErrorChunk,
    MessageEnd,
    MessageStart,
    ReasoningDelta,
    TextDelta,
    UnifiedChunk,
    Usage,
)
from conduit.types import DataPartType, ErrorCode

logger = logging.getLogger(__name__)

RESULT_ERROR_MESSAGES = {
    "error_during_execution": "Agent execution error",
    "error_max_turns": "Maximum turns exceeded",
    "error_max_budget_usd": "Budget exceeded",
    "error_max_structured_output_retries": "Output validation failed",
}
UNKNOWN_RESULT_ERROR = "Unknown error"


def map_claude_cli_event(event: dict[str, Any], state: TurnState) -> list[UnifiedChunk]:
    """Translate one Claude Code CLI JSONL record."""
    return _translate(event, state, sdk=False)


def map_claude_sdk_message(event: dict[str, Any], state: TurnState) -> list[UnifiedChunk]:
    """
    Translate one Claude Agent SDK message.

    Same as the CLI vocabulary, plus the SDK-only ``tool_use_result`` field
    on user messages and ``tool_progress`` events.
    """
    return _translate(event, state, sdk=True)


def _translate(event: dict[str, Any], state: TurnState, sdk: bool) -> list[UnifiedChunk]:
    etype = event.get("type")
    if etype == "system":
        return _system(event, state)
    if etype == "stream_event":
        return _stream_event(event.get("event"), state)
    if etype == "assistant":
        return _assistant(event, state)
    if etype == "user":
        return _user(event, state, sdk)
    if etype == "result":
        return _result(event, state)
    if etype == "tool_progress" and sdk:
        tool = event.get("tool_name") or "tool"
        return [
            DataChunk(DataPartType.AGENT_STATUS, agent_status("tool-use", f"Running {tool}..."))
        ]
    return []


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


def _system(event: dict[str, Any], state: TurnState) -> list[UnifiedChunk]:
    if event.get("subtype") != "init":
        return []
    session_id = event.get("session_id")
    if session_id:
        state.session_id = session_id
    message_id = event.get("uuid") or session_id or str(uuid.uuid4())
    return [
        MessageStart(id=message_id, session_id=session_id),
        DataChunk(DataPartType.AGENT_STATUS, agent_status("thinking", "Agent initialized")),
    ]


def _stream_event(inner: Any, state: TurnState) -> list[UnifiedChunk]:
    if not isinstance(inner, dict):
        return []
    itype = inner.get("type")

    if itype == "message_start":
        message = inner.get("message") or {}
        state.begin_streamed_message(message.get("id"))
        return []

    if itype == "content_block_start":
        state.mark_streamed()
        block = inner.get("content_block") or {}
        if block.get("type") == "tool_use" and block.get("id") and block.get("name"):
            index = inner.get("index")
            if isinstance(index, int):
                state.block_tools[index] = block["id"]
            return state.start_tool(block["id"], block["name"])
        return []

    if itype == "content_block_delta":
        state.mark_streamed()
        delta = inner.get("delta") or {}
        dtype = delta.get("type")
        if dtype == "text_delta" and delta.get("text"):
            return [TextDelta(text=delta["text"])]
        if dtype == "thinking_delta" and delta.get("thinking"):
            return [ReasoningDelta(text=delta["thinking"])]
        if dtype == "input_json_delta" and delta.get("partial_json"):
            call_id = state.block_tools.get(inner.get("index"))
            if call_id is None:
                logger.debug("input_json_delta for unknown block %s", inner.get("index"))
                return []
            return state.record_tool_input(call_id, delta["partial_json"])
        return []

    # content_block_stop, message_delta, message_stop
    return []


def _assistant(event: dict[str, Any], state: TurnState) -> list[UnifiedChunk]:
    message = event.get("message") or {}
    if state.already_streamed(message.get("id")):
        return []

    content = message.get("content")
    if isinstance(content, str):
        return [TextDelta(text=content)] if content else []
    if not isinstance(content, list):
        return []

    chunks: list[UnifiedChunk] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        btype = block.get("type")
        if btype == "text" and block.get("text"):
            chunks.append(TextDelta(text=block["text"]))
        elif btype == "thinking" and block.get("thinking"):
            chunks.append(ReasoningDelta(text=block["thinking"]))
        elif btype == "tool_use" and block.get("id") and block.get("name"):
            call_id = block["id"]
            if call_id in state.started_tools:
                continue
            chunks.extend(state.start_tool(call_id, block["name"]))
            tool_input = block.get("input")
            if tool_input is not None:
                chunks.extend(state.tool_input(call_id, tool_input))
    return chunks


def _user(event: dict[str, Any], state: TurnState, sdk: bool) -> list[UnifiedChunk]:
    chunks: list[UnifiedChunk] = []

    if sdk:
        result = event.get("tool_use_result")
        if isinstance(result, dict) and result.get("tool_use_id"):
            chunks.extend(
                state.finish_tool(
                    str(result["tool_use_id"]),
                    _result_text(result.get("content")),
                    is_error=bool(result.get("is_error")),
                )
            )

    content = (event.get("message") or {}).get("content")
    if isinstance(content, list):
        for block in content:
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue
            call_id = block.get("tool_use_id")
            if not call_id:
                continue
            chunks.extend(
                state.finish_tool(
                    str(call_id),
                    _result_text(block.get("content")),
                    is_error=bool(block.get("is_error")),
                )
            )
    return chunks


def _result(event: dict[str, Any], state: TurnState) -> list[UnifiedChunk]:
    state.saw_terminal = True
    usage = _usage(event.get("usage"))
    subtype = event.get("subtype") or ""

    if subtype == "success" and not event.get("is_error"):
        return [MessageEnd(usage=usage)]

    errors = event.get("errors")
    message = ""
    if isinstance(errors, list) and errors:
        message = ", ".join(str(e) for e in errors)
    elif subtype == "success" and isinstance(event.get("result"), str):
        message = event["result"]
    if not message:
        message = RESULT_ERROR_MESSAGES.get(subtype, UNKNOWN_RESULT_ERROR)

    code = subtype if subtype and subtype != "success" else ErrorCode.EXECUTION_ERROR
    return [ErrorChunk(message=message, code=code), MessageEnd(usage=usage)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result_text(content: Any) -> str:
    """Tool result content is either a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
        )
    return ""


def _usage(raw: Any) -> Usage | None:
    if not isinstance(raw, dict):
        return None
    return Usage(
        input_tokens=int(raw.get("input_tokens") or 0),
        output_tokens=int(raw.get("output_tokens") or 0),
    )
