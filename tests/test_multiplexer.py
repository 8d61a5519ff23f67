"""Tests for AgentSession — the stream-json session multiplexer."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bridgeline.errors import ChildProcessExit, TurnTimeoutError
from bridgeline.session.multiplexer import AgentSession, SessionState
from bridgeline.session.recorder import SessionRecorder
from bridgeline.tools.adapter import ToolAdapter

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


class MockAsyncStdout:
    """Async-aware stdout: ``read()`` blocks until data is fed or EOF."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, event: dict[str, Any]) -> None:
        self._queue.put_nowait((json.dumps(event) + "\n").encode())

    def close(self) -> None:
        """Signal EOF."""
        self._queue.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self._queue.get()


class MockStdin:
    """Records frames written by the session."""

    def __init__(self, on_close: Callable[[], None] | None = None) -> None:
        self.frames: list[dict[str, Any]] = []
        self._closed = False
        self._on_close = on_close

    def write(self, data: bytes) -> None:
        for line in data.decode().splitlines():
            self.frames.append(json.loads(line))

    async def drain(self) -> None:
        pass

    def is_closing(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            if self._on_close is not None:
                self._on_close()


def _make_mock_process(returncode: int = 0) -> tuple[MagicMock, MockAsyncStdout, MockStdin]:
    """A mock child that exits (stdout EOF) when its stdin is closed."""
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = None

    stdout = MockAsyncStdout()
    stdin = MockStdin(on_close=stdout.close)
    stderr = MockAsyncStdout()
    stderr.close()

    async def _wait() -> int:
        proc.returncode = returncode
        return returncode

    proc.stdout = stdout
    proc.stdin = stdin
    proc.stderr = stderr
    proc.wait = AsyncMock(side_effect=_wait)
    proc.terminate = MagicMock()
    proc.kill = MagicMock()
    return proc, stdout, stdin


def _result(text: str) -> list[dict[str, Any]]:
    return [
        {"type": "assistant", "message": {"content": [{"type": "text", "text": text}]}},
        {"type": "result", "subtype": "success"},
    ]


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condition not reached"
            raise AssertionError(msg)
        await asyncio.sleep(0.005)


def _texts(stdin: MockStdin) -> list[str]:
    out = []
    for frame in stdin.frames:
        block = frame["message"]["content"][0]
        if block["type"] == "text":
            out.append(block["text"])
    return out


@pytest.fixture
async def attached() -> tuple[AgentSession, MockAsyncStdout, MockStdin]:
    proc, stdout, stdin = _make_mock_process()
    session = AgentSession(command="fake-agent")
    session.attach(proc)
    return session, stdout, stdin


# ------------------------------------------------------------------ #
# Lifecycle
# ------------------------------------------------------------------ #


class TestStart:
    async def test_spawns_command_and_pushes_initial_prompt(self) -> None:
        proc, _stdout, stdin = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            session = AgentSession(command="claude -p --verbose")
            await session.start(initial_prompt="Watch the logs.")
            await _until(lambda: len(stdin.frames) == 1)

        args, kwargs = spawn.call_args
        assert args == ("claude", "-p", "--verbose")
        assert kwargs["start_new_session"] is True
        assert "ANTHROPIC_API_KEY" not in kwargs["env"]
        assert session.state is SessionState.READY
        assert _texts(stdin) == ["Watch the logs."]
        await session.shutdown()

    async def test_missing_command_raises_child_exit(self) -> None:
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError())
        ):
            session = AgentSession(command="no-such-agent")
            with pytest.raises(ChildProcessExit):
                await session.start()
        assert session.state is SessionState.CLOSED
        assert session.closed.is_set()

    async def test_send_before_start_is_an_error(self) -> None:
        with pytest.raises(RuntimeError):
            await AgentSession(command="x").push("hi")

    async def test_shutdown_closes_stdin_and_is_idempotent(self, attached) -> None:
        session, _stdout, stdin = attached
        await session.shutdown()
        await session.shutdown()
        assert stdin.is_closing()
        assert session.state is SessionState.CLOSED
        assert session.exit_error is not None
        assert session.exit_error.returncode == 0

    async def test_shutdown_flushes_queued_frames(self, attached) -> None:
        session, _stdout, stdin = attached
        for i in range(5):
            await session.push(f"last {i}")
        await session.shutdown()
        assert _texts(stdin) == [f"last {i}" for i in range(5)]


# ------------------------------------------------------------------ #
# Turn correlation
# ------------------------------------------------------------------ #


class TestSendAndAwait:
    async def test_results_resolve_in_send_order(self, attached) -> None:
        session, stdout, stdin = attached
        tasks = [asyncio.create_task(session.send_and_await(f"q{i}")) for i in range(3)]
        await _until(lambda: len(stdin.frames) == 3)
        assert _texts(stdin) == ["q0", "q1", "q2"]
        assert session.pending == 3

        for i in range(3):
            for event in _result(f"a{i}"):
                stdout.feed(event)

        assert await asyncio.gather(*tasks) == ["a0", "a1", "a2"]
        assert session.pending == 0
        await session.shutdown()

    async def test_failed_result_still_returns_text(self, attached) -> None:
        session, stdout, stdin = attached
        task = asyncio.create_task(session.send_and_await("q"))
        await _until(lambda: len(stdin.frames) == 1)
        stdout.feed({"type": "result", "subtype": "error_during_execution", "result": "oops"})
        assert await task == "oops"
        await session.shutdown()

    async def test_timed_out_waiter_does_not_steal_next_result(self, attached) -> None:
        session, stdout, stdin = attached
        with pytest.raises(TurnTimeoutError):
            await session.send_and_await("slow", timeout=0.05)

        second = asyncio.create_task(session.send_and_await("fast"))
        await _until(lambda: len(stdin.frames) == 2)
        for event in _result("late answer") + _result("fresh answer"):
            stdout.feed(event)

        assert await second == "fresh answer"
        await session.shutdown()

    async def test_caller_cancelled_on_full_queue_leaves_no_waiter(self) -> None:
        proc, stdout, stdin = _make_mock_process()
        gate = asyncio.Event()

        async def _slow_drain() -> None:
            await gate.wait()

        stdin.drain = _slow_drain  # type: ignore[method-assign]
        session = AgentSession(command="x", write_queue_size=1)
        session.attach(proc)

        # One frame stuck in drain, one filling the queue.
        first = asyncio.create_task(session.send_and_await("first"))
        await _until(lambda: len(stdin.frames) == 1)
        second = asyncio.create_task(session.send_and_await("second"))
        await _until(lambda: session.pending == 2)

        blocked = asyncio.create_task(session.send_and_await("A"))
        await _until(lambda: session.pending == 3)
        await asyncio.sleep(0.01)
        blocked.cancel()
        with pytest.raises(asyncio.CancelledError):
            await blocked
        assert session.pending == 2

        gate.set()
        last = asyncio.create_task(session.send_and_await("B"))
        await _until(lambda: len(stdin.frames) == 3)
        for event in _result("a-first") + _result("a-second") + _result("a-B"):
            stdout.feed(event)

        assert await asyncio.gather(first, second, last) == ["a-first", "a-second", "a-B"]
        assert _texts(stdin) == ["first", "second", "B"]
        await session.shutdown()

    async def test_session_default_timeout(self) -> None:
        proc, _stdout, _stdin = _make_mock_process()
        session = AgentSession(command="x", turn_timeout=0.05)
        session.attach(proc)
        with pytest.raises(TurnTimeoutError) as exc_info:
            await session.send_and_await("q")
        assert exc_info.value.timeout == 0.05
        await session.shutdown()

    async def test_child_exit_rejects_every_waiter(self, attached) -> None:
        session, stdout, stdin = attached
        tasks = [asyncio.create_task(session.send_and_await(f"q{i}")) for i in range(3)]
        await _until(lambda: len(stdin.frames) == 3)

        stdout.close()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, ChildProcessExit) for r in results)

        await session.closed.wait()
        assert session.state is SessionState.CLOSED
        with pytest.raises(ChildProcessExit):
            await session.push("too late")
        with pytest.raises(ChildProcessExit):
            await session.send_and_await("too late")


# ------------------------------------------------------------------ #
# Push and dispatch
# ------------------------------------------------------------------ #


class TestPushAndDispatch:
    async def test_push_has_no_waiter(self, attached) -> None:
        session, stdout, stdin = attached
        await session.push("event one")
        await _until(lambda: len(stdin.frames) == 1)
        assert session.pending == 0

        for event in _result("noted"):
            stdout.feed(event)
        await _until(lambda: session.results_received == 1)
        assert session.pending == 0
        await session.shutdown()

    async def test_outbound_order_matches_call_order(self, attached) -> None:
        session, _stdout, stdin = attached
        for i in range(20):
            await session.push(f"e{i}")
        await _until(lambda: len(stdin.frames) == 20)
        assert _texts(stdin) == [f"e{i}" for i in range(20)]
        await session.shutdown()

    async def test_assistant_text_goes_to_observer(self) -> None:
        seen: list[str] = []

        async def on_text(text: str) -> None:
            seen.append(text)

        proc, stdout, _stdin = _make_mock_process()
        session = AgentSession(command="x", on_text=on_text)
        session.attach(proc)
        for event in _result("hello"):
            stdout.feed(event)
        await _until(lambda: session.results_received == 1)
        assert seen == ["hello"]
        await session.shutdown()

    async def test_observer_failure_is_contained(self) -> None:
        async def on_text(text: str) -> None:
            raise RuntimeError("boom")

        proc, stdout, stdin = _make_mock_process()
        session = AgentSession(command="x", on_text=on_text)
        session.attach(proc)
        task = asyncio.create_task(session.send_and_await("q"))
        await _until(lambda: len(stdin.frames) == 1)
        for event in _result("still fine"):
            stdout.feed(event)
        assert await task == "still fine"
        await session.shutdown()

    async def test_system_init_recorded(self, attached) -> None:
        session, stdout, _stdin = attached
        stdout.feed({"type": "system", "subtype": "init", "model": "m-1", "session_id": "abc"})
        await _until(lambda: session.model is not None)
        assert session.model == "m-1"
        assert session.agent_session_id == "abc"
        await session.shutdown()

    async def test_tool_use_round_trip(self) -> None:
        tools = ToolAdapter()

        async def echo(arguments: dict[str, Any]) -> dict[str, Any]:
            return {"echo": arguments["x"]}

        tools.register_handler("echo", echo)
        proc, stdout, stdin = _make_mock_process()
        session = AgentSession(command="x", tool_adapter=tools)
        session.attach(proc)

        block = {"type": "tool_use", "id": "tu_1", "name": "echo", "input": {"x": 7}}
        stdout.feed({"type": "assistant", "message": {"content": [block]}})
        await _until(lambda: len(stdin.frames) == 1)
        block = stdin.frames[0]["message"]["content"][0]
        assert block["type"] == "tool_result"
        assert block["tool_use_id"] == "tu_1"
        assert json.loads(block["content"]) == {"echo": 7}
        await session.shutdown()


# ------------------------------------------------------------------ #
# Recording
# ------------------------------------------------------------------ #


class TestRecording:
    async def test_turns_recorded(self, tmp_path: Path) -> None:
        recorder = SessionRecorder("test", "x", sessions_dir=tmp_path)
        proc, stdout, stdin = _make_mock_process()
        session = AgentSession(command="x", recorder=recorder)
        session.attach(proc)

        task = asyncio.create_task(session.send_and_await("q"))
        await _until(lambda: len(stdin.frames) == 1)
        for event in _result("a"):
            stdout.feed(event)
        await task
        await session.shutdown()
        recorder.end("complete")

        lines = recorder.session_file.read_text().strip().split("\n")
        types = [json.loads(line)["type"] for line in lines]
        assert types[0] == "session_start"
        assert "turn_sent" in types
        assert "turn_result" in types
        assert types[-1] == "session_end"
        end = json.loads(lines[-1])
        assert end["turns"] == 1
