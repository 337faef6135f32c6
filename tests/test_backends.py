"""Tests for the command runners."""

from __future__ import annotations

import asyncio
import sys

import pytest

from conduit.backends.base import STDERR, STDOUT, BackendError
from conduit.backends.local import LocalCommandRunner
from conduit.backends.scripted import ScriptedCommandRunner
from tests.mock_events import collect


def _joined(fragments, stream: str) -> str:
    return "".join(f.data for f in fragments if f.stream == stream)


# ===================================================================
# Local subprocess runner
# ===================================================================


class TestLocalCommandRunner:
    @pytest.mark.asyncio
    async def test_stdout_and_stderr_tagged(self):
        handle = await LocalCommandRunner().start(
            [
                sys.executable,
                "-c",
                "import sys; print('{\"type\": \"x\"}'); print('oops', file=sys.stderr)",
            ]
        )
        fragments = await collect(handle.fragments())
        assert await handle.wait() == 0
        assert _joined(fragments, STDOUT) == '{"type": "x"}\n'
        assert _joined(fragments, STDERR) == "oops\n"
        assert handle.timed_out is False

    @pytest.mark.asyncio
    async def test_exit_code(self):
        handle = await LocalCommandRunner().start([sys.executable, "-c", "raise SystemExit(3)"])
        await collect(handle.fragments())
        assert await handle.wait() == 3

    @pytest.mark.asyncio
    async def test_env_and_cwd(self, tmp_path):
        handle = await LocalCommandRunner().start(
            [sys.executable, "-c", "import os; print(os.environ['CONDUIT_TEST'], os.getcwd())"],
            cwd=str(tmp_path),
            env={"CONDUIT_TEST": "yes"},
        )
        out = _joined(await collect(handle.fragments()), STDOUT)
        await handle.wait()
        assert out.split()[0] == "yes"
        assert out.strip().endswith(tmp_path.name)

    @pytest.mark.asyncio
    async def test_multibyte_output(self):
        handle = await LocalCommandRunner().start(
            [sys.executable, "-c", "import sys; sys.stdout.buffer.write('h\\u00e9llo \\u2713\\n'.encode())"]
        )
        out = _joined(await collect(handle.fragments()), STDOUT)
        await handle.wait()
        assert out == "héllo ✓\n"

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with pytest.raises(BackendError) as exc_info:
            await LocalCommandRunner().start(["definitely-not-a-real-agent-cli"])
        assert exc_info.value.code == "spawn_failed"
        assert "Cannot start definitely-not-a-real-agent-cli" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_empty_argv(self):
        with pytest.raises(BackendError):
            await LocalCommandRunner().start([])

    @pytest.mark.asyncio
    async def test_timeout_terminates(self):
        handle = await LocalCommandRunner().start(
            [sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.2
        )
        await collect(handle.fragments())
        code = await handle.wait()
        assert handle.timed_out is True
        assert code != 0

    @pytest.mark.asyncio
    async def test_terminate(self):
        handle = await LocalCommandRunner().start([sys.executable, "-c", "import time; time.sleep(30)"])
        await handle.terminate()
        await collect(handle.fragments())
        assert await handle.wait() != 0
        await handle.terminate()

    @pytest.mark.asyncio
    async def test_early_close_releases_readers(self):
        handle = await LocalCommandRunner().start(
            [sys.executable, "-c", "import sys\nwhile True:\n    sys.stdout.write('x' * 65536)"]
        )
        stream = handle.fragments()
        await stream.__anext__()
        await asyncio.sleep(0.2)
        await stream.aclose()
        await asyncio.wait_for(handle.terminate(), timeout=3)

        pumps = [
            t
            for t in asyncio.all_tasks()
            if getattr(t.get_coro(), "__qualname__", "") == "LocalCommandHandle._pump"
        ]
        assert [t for t in pumps if not t.done()] == []
        assert await asyncio.wait_for(handle.wait(), timeout=3) != 0


# ===================================================================
# Scripted runner
# ===================================================================


class TestScriptedCommandRunner:
    @pytest.mark.asyncio
    async def test_records_calls(self):
        runner = ScriptedCommandRunner()
        await runner.start(["claude", "-p", "hi"], cwd="/w", env={"A": "1"}, timeout=5)
        assert runner.calls == [{"argv": ["claude", "-p", "hi"], "cwd": "/w", "env": {"A": "1"}, "timeout": 5}]

    @pytest.mark.asyncio
    async def test_from_lines_chunked(self):
        runner = ScriptedCommandRunner.from_lines(['{"a": 1}', '{"b": 2}'], chunk_size=4)
        handle = await runner.start(["x"])
        fragments = await collect(handle.fragments())
        assert all(len(f.data) <= 4 for f in fragments)
        assert _joined(fragments, STDOUT) == '{"a": 1}\n{"b": 2}\n'

    @pytest.mark.asyncio
    async def test_from_file(self, tmp_path):
        path = tmp_path / "t.jsonl"
        path.write_text('{"a": 1}\n')
        handle = await ScriptedCommandRunner.from_file(path).start(["x"])
        assert _joined(await collect(handle.fragments()), STDOUT) == '{"a": 1}\n'

    @pytest.mark.asyncio
    async def test_exit_code(self):
        handle = await ScriptedCommandRunner(exit_code=2).start(["x"])
        await collect(handle.fragments())
        assert await handle.wait() == 2

    @pytest.mark.asyncio
    async def test_hang_times_out(self):
        handle = await ScriptedCommandRunner(hang=True).start(["x"], timeout=0.01)
        await collect(handle.fragments())
        assert handle.timed_out
        assert await handle.wait() == -15
