"""Abstract base class for agent providers."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator

from conduit.stream.types import MessageEnd, UnifiedChunk


@dataclass
class ExecuteParams:
    """Inputs for one execution of an agent."""

    prompt: str
    session_id: str | None = None
    model: str | None = None
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    cancel: asyncio.Event | None = None


class AgentProvider(ABC):
    """
    A provider runs one agent backend and speaks the unified chunk protocol.

    Every execution yields exactly one ``message-start`` first and exactly
    one ``message-end`` last, whatever the backend does.
    """

    id: str = ""
    name: str = ""
    description: str = ""

    @abstractmethod
    async def execute(self, params: ExecuteParams) -> AsyncIterator[UnifiedChunk]:
        """Run *params.prompt* and yield unified chunks."""
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        if False:  # pragma: no cover
            yield MessageEnd()  # type: ignore[misc]

    def info(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name, "description": self.description}
