"""Scripted command runner: replays canned output without a process."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator

from conduit.backends.base import STDOUT, CommandHandle, CommandRunner, LogFragment

_TERMINATED_EXIT_CODE = -15


class ScriptedCommandHandle(CommandHandle):
    def __init__(
        self,
        script: list[LogFragment],
        exit_code: int,
        hang: bool,
        delay: float,
        timeout: float | None,
    ) -> None:
        self._script = script
        self._exit_code = exit_code
        self._hang = hang
        self._delay = delay
        self._timeout = timeout
        self._terminated = asyncio.Event()
        self.timed_out = False

    @property
    def terminated(self) -> bool:
        return self._terminated.is_set()

    async def fragments(self) -> AsyncIterator[LogFragment]:
        for fragment in self._script:
            if self._terminated.is_set():
                return
            if self._delay:
                await asyncio.sleep(self._delay)
            yield fragment
        if self._hang:
            # Behave like a process that keeps running until stopped.
            try:
                await asyncio.wait_for(self._terminated.wait(), timeout=self._timeout)
            except asyncio.TimeoutError:
                self.timed_out = True
                self._terminated.set()

    async def wait(self) -> int:
        if self._terminated.is_set():
            return _TERMINATED_EXIT_CODE
        return self._exit_code

    async def terminate(self) -> None:
        self._terminated.set()


class ScriptedCommandRunner(CommandRunner):
    """
    A runner that emits pre-configured output fragments.

    Usage::

        runner = ScriptedCommandRunner.from_lines(
            ['{"type": "thread.started", "thread_id": "t1"}'],
        )

    Every ``start`` call is recorded in ``calls`` so tests can assert on the
    command line that was built.
    """

    def __init__(
        self,
        script: list[LogFragment] | None = None,
        exit_code: int = 0,
        hang: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.script = list(script or [])
        self.exit_code = exit_code
        self.hang = hang
        self.delay = delay
        self.calls: list[dict] = []
        self.handles: list[ScriptedCommandHandle] = []

    @classmethod
    def from_lines(
        cls,
        lines: list[str],
        chunk_size: int | None = None,
        **kwargs,
    ) -> ScriptedCommandRunner:
        """
        Build a runner whose stdout is *lines* joined by newlines.

        With *chunk_size* the text is cut into fixed-size fragments regardless
        of line boundaries, as a pipe would deliver it.
        """
        text = "".join(line + "\n" for line in lines)
        if chunk_size:
            pieces = [text[i : i + chunk_size] for i in range(0, len(text), chunk_size)]
        else:
            pieces = [text] if text else []
        return cls([LogFragment(STDOUT, p) for p in pieces], **kwargs)

    @classmethod
    def from_file(cls, path: str | Path, chunk_size: int | None = None, **kwargs) -> ScriptedCommandRunner:
        """Replay a captured JSONL transcript."""
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        return cls.from_lines(lines, chunk_size=chunk_size, **kwargs)

    async def start(
        self,
        argv: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandHandle:
        self.calls.append({"argv": list(argv), "cwd": cwd, "env": env, "timeout": timeout})
        handle = ScriptedCommandHandle(
            self.script,
            exit_code=self.exit_code,
            hang=self.hang,
            delay=self.delay,
            timeout=timeout,
        )
        self.handles.append(handle)
        return handle
