"""Local subprocess command runner."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from typing import AsyncIterator

from conduit.backends.base import (
    STDERR,
    STDOUT,
    BackendError,
    CommandHandle,
    CommandRunner,
    LogFragment,
)

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024
# Bounded so a slow consumer pauses the pipe readers.
_QUEUE_SIZE = 64
_TERMINATE_GRACE_SECONDS = 5


class LocalCommandHandle(CommandHandle):
    def __init__(self, proc: asyncio.subprocess.Process, timeout: float | None = None):
        self._proc = proc
        self._timeout = timeout
        self._watchdog: asyncio.Task | None = None
        self._reading = False
        self.timed_out = False

    @property
    def pid(self) -> int:
        return self._proc.pid

    async def fragments(self) -> AsyncIterator[LogFragment]:
        queue: asyncio.Queue[LogFragment | None] = asyncio.Queue(maxsize=_QUEUE_SIZE)
        pumps = [
            asyncio.create_task(self._pump(self._proc.stdout, STDOUT, queue)),
            asyncio.create_task(self._pump(self._proc.stderr, STDERR, queue)),
        ]
        self._reading = True
        if self._timeout is not None and self._watchdog is None:
            self._watchdog = asyncio.create_task(self._watch(self._timeout))

        open_streams = len(pumps)
        try:
            while open_streams:
                item = await queue.get()
                if item is None:
                    open_streams -= 1
                    continue
                yield item
        finally:
            for task in pumps:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            self._reading = False

    async def wait(self) -> int:
        try:
            return await self._exited()
        finally:
            if self._watchdog is not None:
                self._watchdog.cancel()

    async def terminate(self) -> None:
        if self._proc.returncode is not None:
            return
        try:
            self._proc.terminate()
            await asyncio.wait_for(self._exited(), timeout=_TERMINATE_GRACE_SECONDS)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            logger.warning("Process %s ignored SIGTERM; killing", self._proc.pid)
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass

    async def _exited(self) -> int:
        # Process.wait() only returns once both pipes hit EOF, so output
        # nobody is reading any more has to be discarded.
        if not self._reading:
            await asyncio.gather(self._discard(self._proc.stdout), self._discard(self._proc.stderr))
        return await self._proc.wait()

    @staticmethod
    async def _discard(reader: asyncio.StreamReader | None) -> None:
        if reader is None:
            return
        while await reader.read(_READ_SIZE):
            pass

    async def _pump(
        self,
        reader: asyncio.StreamReader | None,
        stream: str,
        queue: asyncio.Queue[LogFragment | None],
    ) -> None:
        # Multi-byte characters may straddle reads.
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        cancelled = False
        try:
            if reader is None:
                return
            while True:
                data = await reader.read(_READ_SIZE)
                if not data:
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        await queue.put(LogFragment(stream, tail))
                    return
                text = decoder.decode(data)
                if text:
                    await queue.put(LogFragment(stream, text))
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            # A cancelled pump has no consumer left and the queue may be full.
            if not cancelled:
                await queue.put(None)

    async def _watch(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        logger.warning("Process %s timed out after %ss", self._proc.pid, timeout)
        self.timed_out = True
        await self.terminate()


class LocalCommandRunner(CommandRunner):
    """Runs agent CLIs as local subprocesses."""

    async def start(
        self,
        argv: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandHandle:
        if not argv:
            raise BackendError("Empty command line", code="spawn_failed")

        merged_env = dict(os.environ)
        if env:
            merged_env.update(env)

        logger.debug("Starting %s (cwd=%s)", argv[0], cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=merged_env,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise BackendError(
                f"Cannot start {argv[0]}: {e.strerror or e}", code="spawn_failed"
            ) from None
        return LocalCommandHandle(proc, timeout=timeout)
