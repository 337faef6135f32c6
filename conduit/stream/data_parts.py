"""JSON schemas for the structured ``data`` chunk payloads."""

from __future__ import annotations

from typing import Any

import jsonschema

from conduit.types import DataPartType

DATA_PART_SCHEMAS: dict[str, dict[str, Any]] = {
    DataPartType.AGENT_STATUS: {
        "type": "object",
        "properties": {
            "status": {"enum": ["thinking", "tool-use", "done", "error"]},
            "message": {"type": "string"},
        },
        "required": ["status"],
    },
    DataPartType.SANDBOX_STATUS: {
        "type": "object",
        "properties": {
            "sandboxId": {"type": "string"},
            "status": {"enum": ["creating", "warming", "ready", "error"]},
            "message": {"type": "string"},
            "error": {"type": "string"},
        },
        "required": ["status"],
    },
    DataPartType.FILE_WRITTEN: {
        "type": "object",
        "properties": {"path": {"type": "string"}},
        "required": ["path"],
    },
    DataPartType.COMMAND_OUTPUT: {
        "type": "object",
        "properties": {
            "command": {"type": "string"},
            "output": {"type": "string"},
            "stream": {"enum": ["stdout", "stderr"]},
            "exitCode": {"type": "integer"},
        },
        "required": ["command", "output", "stream"],
    },
    DataPartType.PREVIEW_URL: {
        "type": "object",
        "properties": {
            "url": {"type": "string"},
            "port": {"type": "integer"},
        },
        "required": ["url", "port"],
    },
}


def validate_data_part(data_type: str, payload: Any) -> tuple[bool, str | None]:
    """
    Check *payload* against the schema registered for *data_type*.

    Unknown data types pass; producers may add their own.
    """
    schema = DATA_PART_SCHEMAS.get(data_type)
    if schema is None:
        return True, None
    try:
        jsonschema.validate(instance=payload, schema=schema)
        return True, None
    except jsonschema.ValidationError as e:
        return False, str(e.message)


def parse_data_part(data_type: str, payload: Any) -> dict[str, Any] | None:
    """Return *payload* if it is valid for *data_type*, else ``None``."""
    ok, _ = validate_data_part(data_type, payload)
    return payload if ok and isinstance(payload, dict) else None


def agent_status(status: str, message: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": status}
    if message is not None:
        payload["message"] = message
    return payload
