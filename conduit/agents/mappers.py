"""Provider id -> event mapper dispatch."""

from __future__ import annotations

import logging
from typing import Any, Callable

from conduit.agents.claude import map_claude_cli_event, map_claude_sdk_message
from conduit.agents.codex import map_codex_event
from conduit.agents.state import TurnState
from conduit.stream.types import ErrorChunk, UnifiedChunk
from conduit.types import ErrorCode

logger = logging.getLogger(__name__)

EventMapper = Callable[[dict[str, Any], TurnState], list[UnifiedChunk]]

MAPPERS: dict[str, EventMapper] = {
    "claude": map_claude_cli_event,
    "claude-agent": map_claude_sdk_message,
    "codex": map_codex_event,
}


def get_mapper(provider_id: str) -> EventMapper:
    try:
        return MAPPERS[provider_id]
    except KeyError:
        available = ", ".join(sorted(MAPPERS))
        raise KeyError(f"No event mapper for '{provider_id}'. Available: {available}") from None


def map_event(provider_id: str, event: Any, state: TurnState) -> list[UnifiedChunk]:
    """
    Translate one raw backend record into unified chunks.

    Never raises for bad input: non-object records produce nothing, and a
    failure inside the mapper becomes a single ``mapping_error`` chunk so the
    rest of the stream is still translated.
    """
    mapper = get_mapper(provider_id)
    if not isinstance(event, dict):
        return []
    try:
        return mapper(event, state)
    except Exception as e:
        logger.warning("Failed to map %s event %r: %s", provider_id, event.get("type"), e)
        return [ErrorChunk(message=f"Failed to map event: {e}", code=ErrorCode.MAPPING_ERROR)]
