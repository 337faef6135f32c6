"""Command Runner Interface (abstract)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

STDOUT = "stdout"
STDERR = "stderr"


class BackendError(Exception):
    """Structured error from a command runner."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


@dataclass
class LogFragment:
    """A piece of process output, tagged with the stream it came from."""

    stream: str
    data: str


class CommandHandle(ABC):
    """A running command."""

    timed_out: bool = False

    @abstractmethod
    def fragments(self) -> AsyncIterator[LogFragment]:
        """Output fragments in arrival order, until both streams close."""
        ...

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process and return its exit code."""
        ...

    @abstractmethod
    async def terminate(self) -> None:
        """Ask the process to stop.  Safe to call more than once."""
        ...


class CommandRunner(ABC):
    """
    Starts agent processes.

    Where the process runs (local subprocess, remote sandbox, canned replay)
    is the runner's business; callers only see tagged output fragments and
    an exit code.
    """

    @abstractmethod
    async def start(
        self,
        argv: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandHandle:
        ...
