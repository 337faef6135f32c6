"""
Turn driver -- runs one agent execution end to end.

For CLI backends the driver:

  1. Builds the backend command line and starts it through a
     ``CommandRunner``.
  2. Feeds stdout fragments through a ``LineDemultiplexer`` and maps every
     record with the provider's event mapper.  stderr is only logged.
  3. Passes the mapped chunks through a ``TurnSequencer`` so the stream is
     always bracketed by one ``message-start`` and one ``message-end``.
  4. Reports process failures (non-zero exit without a terminal event,
     timeout) as a single ``error`` chunk.

Cancellation is cooperative: setting ``ExecuteParams.cancel`` asks the
process to stop, the remaining output is drained and the message is closed
without an ``error``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import uuid
from abc import abstractmethod
from typing import Any, AsyncIterable, AsyncIterator, Callable

from conduit.agents.base import AgentProvider, ExecuteParams
from conduit.agents.mappers import map_event
from conduit.agents.state import TurnState
from conduit.backends.base import STDOUT, BackendError, CommandHandle, CommandRunner
from conduit.config import AgentConfig
from conduit.stream.lines import LineDemultiplexer
from conduit.stream.types import ErrorChunk, MessageEnd, MessageStart, UnifiedChunk, Usage
from conduit.types import ErrorCode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Bracketing
# ---------------------------------------------------------------------------


class TurnSequencer:
    """
    Enforces message bracketing over mapped chunks.

    Repeated ``message-start`` chunks are dropped and one is synthesized if
    content arrives first.  ``message-end`` is held back until ``finish`` so
    it is always last; the most recent usage wins.  Only the first ``error``
    is forwarded.
    """

    def __init__(self, state: TurnState | None = None) -> None:
        self._state = state
        self.started = False
        self.errored = False
        self.usage: Usage | None = None

    def push(self, chunks: list[UnifiedChunk]) -> list[UnifiedChunk]:
        out: list[UnifiedChunk] = []
        for chunk in chunks:
            if isinstance(chunk, MessageStart):
                if not self.started:
                    self.started = True
                    out.append(chunk)
                continue
            if not self.started:
                out.append(self._synthesize_start())
            if isinstance(chunk, MessageEnd):
                if chunk.usage is not None:
                    self.usage = chunk.usage
                continue
            if isinstance(chunk, ErrorChunk):
                if self.errored:
                    logger.info("Dropping additional error: %s", chunk.message)
                    continue
                self.errored = True
            out.append(chunk)
        return out

    def finish(self) -> list[UnifiedChunk]:
        out: list[UnifiedChunk] = []
        if not self.started:
            out.append(self._synthesize_start())
        usage = self.usage
        if usage is None and self._state is not None:
            usage = self._state.total_usage()
        out.append(MessageEnd(usage=usage))
        return out

    def _synthesize_start(self) -> MessageStart:
        self.started = True
        session_id = self._state.session_id if self._state is not None else None
        return MessageStart(id=str(uuid.uuid4()), session_id=session_id)


_RATE_LIMIT_RE = re.compile(r"\b(rate[ _-]?limit(ed)?|429|too many requests)\b")
_AUTH_RE = re.compile(r"\b(401|unauthori[sz]ed|authentication|auth)\b")
_ABORT_RE = re.compile(r"\babort(ed|ing)?\b")


def classify_error(exc: BaseException) -> str:
    """Coarse error code for an exception raised while running an agent."""
    if isinstance(exc, BackendError) and exc.code == ErrorCode.TIMEOUT:
        return ErrorCode.TIMEOUT
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorCode.TIMEOUT
    if isinstance(exc, asyncio.CancelledError):
        return ErrorCode.ABORTED
    message = str(exc).lower()
    if _RATE_LIMIT_RE.search(message):
        return ErrorCode.RATE_LIMIT
    if _AUTH_RE.search(message):
        return ErrorCode.AUTH
    if _ABORT_RE.search(message):
        return ErrorCode.ABORTED
    return ErrorCode.EXECUTION_ERROR


def _error_chunk(exc: BaseException) -> ErrorChunk:
    return ErrorChunk(message=str(exc) or type(exc).__name__, code=classify_error(exc))


_EXHAUSTED = object()


async def _next_message(iterator: AsyncIterator[dict]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


# ---------------------------------------------------------------------------
# CLI-backed providers
# ---------------------------------------------------------------------------


class CliAgentProvider(AgentProvider):
    """An agent that runs as a subprocess emitting JSONL on stdout."""

    def __init__(self, runner: CommandRunner, config: AgentConfig | None = None) -> None:
        self.runner = runner
        self.config = config or AgentConfig(binary=self.default_binary)

    default_binary = ""

    @abstractmethod
    def build_command(self, params: ExecuteParams) -> list[str]:
        ...

    def _model(self, params: ExecuteParams) -> str | None:
        return params.model or self.config.model or None

    async def execute(self, params: ExecuteParams) -> AsyncIterator[UnifiedChunk]:
        state = TurnState(provider_id=self.id, session_id=params.session_id)
        sequencer = TurnSequencer(state)
        cancel = params.cancel or asyncio.Event()
        argv = self.build_command(params)
        env = {**self.config.env, **params.env}

        try:
            handle = await self.runner.start(
                argv,
                cwd=params.cwd,
                env=env or None,
                timeout=self.config.timeout_seconds or None,
            )
        except BackendError as e:
            logger.warning("Failed to start %s: %s", self.id, e)
            for chunk in sequencer.push([_error_chunk(e)]):
                yield chunk
            for chunk in sequencer.finish():
                yield chunk
            return

        watcher = asyncio.create_task(self._watch_cancel(cancel, handle))
        demux = LineDemultiplexer()
        exit_code: int | None = None
        try:
            try:
                async for fragment in handle.fragments():
                    if fragment.stream != STDOUT:
                        self._log_stderr(fragment.data)
                        continue
                    for record in demux.feed(fragment.data):
                        for chunk in sequencer.push(map_event(self.id, record, state)):
                            yield chunk
                for record in demux.close():
                    for chunk in sequencer.push(map_event(self.id, record, state)):
                        yield chunk
                exit_code = await handle.wait()
            except Exception as e:
                logger.warning("%s execution failed: %s", self.id, e)
                for chunk in sequencer.push([_error_chunk(e)]):
                    yield chunk
        finally:
            watcher.cancel()
            if exit_code is None:
                await handle.terminate()

        if demux.dropped:
            logger.debug("%s: dropped %d malformed lines", self.id, demux.dropped)

        tail: list[UnifiedChunk] = []
        if cancel.is_set():
            logger.info("%s execution cancelled", self.id)
        elif handle.timed_out:
            tail.append(
                ErrorChunk(
                    message=f"{self.name} timed out after {self.config.timeout_seconds}s",
                    code=ErrorCode.TIMEOUT,
                )
            )
        elif exit_code not in (None, 0) and not state.saw_terminal:
            logger.warning("%s exited with code %s", self.id, exit_code)
            tail.append(
                ErrorChunk(
                    message=f"{self.name} exited with code {exit_code}",
                    code=ErrorCode.PROCESS_EXIT,
                )
            )
        for chunk in sequencer.push(tail):
            yield chunk
        for chunk in sequencer.finish():
            yield chunk

    async def _watch_cancel(self, cancel: asyncio.Event, handle: CommandHandle) -> None:
        await cancel.wait()
        logger.info("Stopping %s on cancel", self.id)
        await handle.terminate()

    def _log_stderr(self, data: str) -> None:
        for line in data.splitlines():
            if line.strip():
                logger.debug("[%s stderr] %s", self.id, line)


class ClaudeCliAgent(CliAgentProvider):
    id = "claude"
    name = "Claude Code"
    description = "Claude Code CLI with partial-message streaming"
    default_binary = "claude"

    def build_command(self, params: ExecuteParams) -> list[str]:
        argv = [
            self.config.binary or self.default_binary,
            "-p",
            "--output-format",
            "stream-json",
            "--verbose",
            "--include-partial-messages",
            "--dangerously-skip-permissions",
        ]
        model = self._model(params)
        if model:
            argv += ["--model", model]
        if params.session_id:
            argv += ["--resume", params.session_id]
        argv += list(self.config.extra_args)
        argv.append(params.prompt)
        return argv


class CodexCliAgent(CliAgentProvider):
    id = "codex"
    name = "Codex"
    description = "OpenAI Codex CLI in exec mode"
    default_binary = "codex"

    def build_command(self, params: ExecuteParams) -> list[str]:
        argv = [
            self.config.binary or self.default_binary,
            "exec",
            "--json",
            "--dangerously-bypass-approvals-and-sandbox",
            "--skip-git-repo-check",
            "-C",
            params.cwd or os.getcwd(),
        ]
        model = self._model(params)
        if model:
            argv += ["-m", model]
        argv += list(self.config.extra_args)
        if params.session_id:
            argv += ["resume", params.session_id]
        argv.append(params.prompt)
        return argv


# ---------------------------------------------------------------------------
# SDK-backed provider
# ---------------------------------------------------------------------------

SdkQuery = Callable[[ExecuteParams], AsyncIterable[dict[str, Any]]]


class SdkAgentProvider(AgentProvider):
    """
    Claude Agent SDK provider.

    The SDK session itself is supplied as *query*: a callable returning an
    async iterable of SDK message dicts for the given parameters.
    """

    id = "claude-agent"
    name = "Claude Agent"
    description = "Claude Agent SDK with full agent capabilities"

    def __init__(self, query: SdkQuery | None = None) -> None:
        self._query = query

    @property
    def available(self) -> bool:
        return self._query is not None

    async def execute(self, params: ExecuteParams) -> AsyncIterator[UnifiedChunk]:
        state = TurnState(provider_id=self.id, session_id=params.session_id)
        sequencer = TurnSequencer(state)
        cancel = params.cancel or asyncio.Event()

        if self._query is None:
            error = ErrorChunk(
                message="No Claude Agent SDK session configured",
                code=ErrorCode.EXECUTION_ERROR,
            )
            for chunk in sequencer.push([error]):
                yield chunk
            for chunk in sequencer.finish():
                yield chunk
            return

        messages = self._query(params)
        iterator = messages.__aiter__()
        cancelled = asyncio.create_task(cancel.wait())
        step: asyncio.Task | None = None
        try:
            while True:
                step = asyncio.create_task(_next_message(iterator))
                await asyncio.wait({step, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                if cancel.is_set():
                    logger.info("%s execution cancelled", self.id)
                    break
                message = step.result()
                if message is _EXHAUSTED:
                    break
                for chunk in sequencer.push(map_event(self.id, message, state)):
                    yield chunk
        except Exception as e:
            if classify_error(e) == ErrorCode.ABORTED:
                logger.info("%s execution aborted: %s", self.id, e)
            else:
                logger.warning("%s execution failed: %s", self.id, e)
                for chunk in sequencer.push([_error_chunk(e)]):
                    yield chunk
        finally:
            cancelled.cancel()
            if step is not None and not step.done():
                # The SDK is blocked mid-message; interrupt it before closing.
                step.cancel()
                await asyncio.wait({step})
            if step is not None and not step.cancelled() and step.exception() is not None:
                logger.debug("%s stopped with %r", self.id, step.exception())
            aclose = getattr(messages, "aclose", None)
            if aclose is not None:
                await aclose()

        for chunk in sequencer.finish():
            yield chunk
