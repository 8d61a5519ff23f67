"""Agent session — one long-lived stream-json subprocess shared by all callers."""

from __future__ import annotations

import asyncio
import collections
import contextlib
import enum
import logging
import os
import shlex
from typing import Any

import click

from bridgeline.constants import DEFAULT_AGENT_COMMAND, MAX_LINE_BYTES, TextCallback
from bridgeline.errors import (
    ChildProcessExit,
    FrameEncodeError,
    TransportClosedError,
    TurnTimeoutError,
)
from bridgeline.helpers import format_stderr_preview, record_error
from bridgeline.session.events import StatusEvent, TurnResultEvent, TurnSentEvent
from bridgeline.session.messages import (
    AssistantChunk,
    EnvelopeDecoder,
    Message,
    SystemInit,
    ToolResult,
    ToolUse,
    TurnResult,
    tool_result_message,
    user_text_message,
)
from bridgeline.session.recorder import NullRecorder, SessionRecorder
from bridgeline.tools.adapter import ToolAdapter
from bridgeline.transport.framing import FrameWriter, read_frames

logger = logging.getLogger(__name__)

#: Seconds to wait for exit after closing stdin before SIGTERM.
_SHUTDOWN_WAIT = 5.0

#: Seconds to wait after SIGTERM before SIGKILL.
_SIGTERM_WAIT = 3.0

#: Seconds to wait for the exit code once stdout has closed.
_EXIT_CODE_WAIT = 2.0

#: Seconds to wait for queued frames to be written before closing stdin.
_FLUSH_WAIT = 5.0

#: Default capacity of the outbound frame queue.
DEFAULT_WRITE_QUEUE_SIZE = 100

#: Stderr lines kept for the exit report.
_STDERR_TAIL = 20

#: Env vars stripped from the agent subprocess so it uses subscription auth.
_STRIPPED_ENV_KEYS = {"ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GOOGLE_API_KEY"}


class SessionState(enum.Enum):
    STARTING = "starting"
    READY = "ready"
    CLOSED = "closed"


class AgentSession:
    """Duplex stream-json session with a single agent subprocess.

    Outbound turns are written in call order through a bounded queue (a full
    queue blocks the caller) and a drain-aware ``FrameWriter``.  Inbound
    frames are decoded by an ``EnvelopeDecoder``:

    * assistant text goes to the ``on_text`` observer;
    * ``tool_use`` is handed to the ``ToolAdapter`` without waiting;
    * each ``result`` resolves the oldest pending ``send_and_await`` caller.

    The child is assumed to finish turns in the order they were sent.  When
    it exits, every pending caller is rejected with ``ChildProcessExit``.
    """

    def __init__(
        self,
        command: str = DEFAULT_AGENT_COMMAND,
        tool_adapter: ToolAdapter | None = None,
        recorder: SessionRecorder | None = None,
        on_text: TextCallback | None = None,
        turn_timeout: float | None = None,
        write_queue_size: int = DEFAULT_WRITE_QUEUE_SIZE,
        cwd: str | None = None,
    ) -> None:
        self._command = command
        self._recorder = recorder if recorder is not None else NullRecorder()
        self._tools = tool_adapter if tool_adapter is not None else ToolAdapter()
        self._tools.attach_recorder(self._recorder)
        self._tools.bind(self.send_tool_result)
        self._on_text = on_text
        self._turn_timeout = turn_timeout
        self._cwd = cwd

        self._state = SessionState.STARTING
        self._process: asyncio.subprocess.Process | None = None
        self._writer: FrameWriter | None = None
        self._decoder = EnvelopeDecoder()

        self._outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue(
            maxsize=write_queue_size
        )
        self._send_lock = asyncio.Lock()
        self._waiters: collections.deque[asyncio.Future[str]] = collections.deque()

        self._read_task: asyncio.Task[None] | None = None
        self._write_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stderr_tail: collections.deque[str] = collections.deque(maxlen=_STDERR_TAIL)

        self.closed = asyncio.Event()
        self.exit_error: ChildProcessExit | None = None
        self.model: str | None = None
        self.agent_session_id: str | None = None
        self.results_received = 0

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pending(self) -> int:
        """Number of blocking callers still waiting for a result."""
        return len(self._waiters)

    @property
    def tools(self) -> ToolAdapter:
        return self._tools

    @property
    def pid(self) -> int | None:
        if self._process is not None and self._process.returncode is None:
            return self._process.pid
        return None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self, initial_prompt: str | None = None) -> None:
        """Spawn the agent and start the I/O loops.

        Raises ``ChildProcessExit`` if the command cannot be started.
        """
        if self._state is not SessionState.STARTING:
            return

        args = shlex.split(self._command)
        if not args:
            msg = "Agent command is empty"
            raise ValueError(msg)

        env = {k: v for k, v in os.environ.items() if k not in _STRIPPED_ENV_KEYS}
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=MAX_LINE_BYTES,
                env=env,
                cwd=self._cwd,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            self._state = SessionState.CLOSED
            self.closed.set()
            click.echo(
                f"Agent command not found: {args[0]}\n"
                f"Make sure '{args[0]}' is installed and on your PATH.",
                err=True,
            )
            record_error(self._recorder, f"Command not found: {args[0]}", logger=logger)
            raise ChildProcessExit() from exc
        except OSError as exc:
            self._state = SessionState.CLOSED
            self.closed.set()
            record_error(self._recorder, f"Failed to spawn agent: {exc}", logger=logger)
            raise ChildProcessExit() from exc

        self.attach(proc)
        logger.info("Agent started (pid %s): %s", proc.pid, self._command)

        if initial_prompt:
            await self.push(initial_prompt)

    def attach(self, proc: asyncio.subprocess.Process) -> None:
        """Adopt an already-running process and start the I/O loops."""
        if proc.stdin is None or proc.stdout is None:
            msg = "Agent process must have piped stdin and stdout"
            raise ValueError(msg)
        self._process = proc
        self._writer = FrameWriter(proc.stdin)
        self._state = SessionState.READY
        self._read_task = asyncio.create_task(self._read_loop())
        self._write_task = asyncio.create_task(self._write_loop())
        if proc.stderr is not None:
            self._stderr_task = asyncio.create_task(self._stderr_loop())
        self._recorder.record(StatusEvent(ts="", seq=0, status="agent_ready"))

    async def shutdown(self) -> None:
        """Close stdin -> wait -> SIGTERM -> SIGKILL.  Idempotent."""
        proc = self._process
        if proc is not None and proc.returncode is None:
            # 0. Let already-queued frames (final digest, tool results) out.
            if self._write_task is not None and not self._write_task.done():
                try:
                    await asyncio.wait_for(self._outbound.join(), timeout=_FLUSH_WAIT)
                except TimeoutError:
                    logger.warning(
                        "Dropping %d unsent frame(s) at shutdown", self._outbound.qsize()
                    )

            # 1. Closing stdin ends the stream-json input; the CLI exits.
            if self._writer is not None:
                self._writer.close()
            with contextlib.suppress(OSError, AttributeError):
                if proc.stdin is not None:
                    proc.stdin.close()

            # 2. Wait for graceful exit.
            try:
                await asyncio.wait_for(proc.wait(), timeout=_SHUTDOWN_WAIT)
            except TimeoutError:
                # 3. SIGTERM.
                with contextlib.suppress(ProcessLookupError):
                    proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=_SIGTERM_WAIT)
                except TimeoutError:
                    # 4. SIGKILL.
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                    await proc.wait()

        # Let the read loop observe EOF and reject waiters itself.
        if self._read_task is not None and not self._read_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._read_task), timeout=_EXIT_CODE_WAIT)
            except TimeoutError:
                self._read_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._read_task

        for task in (self._write_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        returncode = proc.returncode if proc is not None else None
        self._close(ChildProcessExit(returncode))

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    async def send_and_await(self, text: str, timeout: float | None = None) -> str:
        """Send a turn and wait for its result text.

        Concurrent callers are answered strictly in the order they called.
        Raises ``TurnTimeoutError`` after *timeout* seconds (default: the
        session's ``turn_timeout``; ``None`` waits forever) and
        ``ChildProcessExit`` if the agent goes away first.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str] = loop.create_future()
        async with self._send_lock:
            self._ensure_open()
            # Queue the waiter before the frame exists so no result can
            # arrive ahead of it.
            self._waiters.append(future)
            try:
                await self._outbound.put(user_text_message(text))
            except BaseException:
                # The frame never went out, so no result will claim this slot.
                with contextlib.suppress(ValueError):
                    self._waiters.remove(future)
                future.cancel()
                raise
        self._record_sent("await", text)

        limit = timeout if timeout is not None else self._turn_timeout
        if limit is None:
            return await future
        try:
            # On timeout wait_for cancels the future; it keeps its slot in
            # the queue so the late result is discarded, not misrouted.
            return await asyncio.wait_for(future, timeout=limit)
        except TimeoutError:
            logger.warning("Turn timed out after %gs", limit)
            raise TurnTimeoutError(limit) from None

    async def push(self, text: str) -> None:
        """Send a turn without waiting for its result."""
        async with self._send_lock:
            self._ensure_open()
            await self._outbound.put(user_text_message(text))
        self._record_sent("push", text)

    async def send_tool_result(self, tool_use_id: str, content: str) -> None:
        """Write a ``tool_result`` frame answering *tool_use_id*."""
        async with self._send_lock:
            self._ensure_open()
            await self._outbound.put(tool_result_message(tool_use_id, content))

    async def wait_closed(self) -> ChildProcessExit:
        """Block until the agent exits; returns the exit error."""
        await self.closed.wait()
        assert self.exit_error is not None
        return self.exit_error

    # ------------------------------------------------------------------ #
    # Internal — loops
    # ------------------------------------------------------------------ #

    async def _write_loop(self) -> None:
        """Drain the outbound queue into the frame writer, in order."""
        assert self._writer is not None
        while True:
            frame = await self._outbound.get()
            try:
                await self._writer.write(frame)
            except FrameEncodeError as exc:
                record_error(self._recorder, str(exc), "transport", logger=logger)
            except TransportClosedError as exc:
                self._outbound.task_done()
                record_error(
                    self._recorder, f"Agent stdin closed: {exc}", "transport", logger=logger
                )
                returncode = self._process.returncode if self._process else None
                self._close(ChildProcessExit(returncode))
                return
            self._outbound.task_done()

    async def _read_loop(self) -> None:
        """Decode stdout frames until EOF, then fail anything still waiting."""
        proc = self._process
        assert proc is not None and proc.stdout is not None

        try:
            async for line in read_frames(proc.stdout):
                for message in self._decoder.decode(line):
                    await self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Agent read loop error: %s", exc)

        returncode = proc.returncode
        if returncode is None:
            with contextlib.suppress(TimeoutError):
                returncode = await asyncio.wait_for(proc.wait(), timeout=_EXIT_CODE_WAIT)

        if returncode not in (None, 0):
            stderr_preview = format_stderr_preview("\n".join(self._stderr_tail))
            error_msg = f"Agent exited with code {returncode}."
            if stderr_preview:
                error_msg += f" Stderr:\n  {stderr_preview}"
            click.echo(error_msg, err=True)
            record_error(self._recorder, error_msg, logger=logger)
        else:
            logger.info("Agent stdout closed (exit code %s)", returncode)

        self._close(ChildProcessExit(returncode))

    async def _stderr_loop(self) -> None:
        proc = self._process
        assert proc is not None and proc.stderr is not None
        with contextlib.suppress(ValueError):
            async for line in read_frames(proc.stderr):
                self._stderr_tail.append(line)
                logger.debug("agent stderr: %s", line)

    # ------------------------------------------------------------------ #
    # Internal — dispatch
    # ------------------------------------------------------------------ #

    async def _dispatch(self, message: Message) -> None:
        if isinstance(message, AssistantChunk):
            if self._on_text is not None:
                try:
                    await self._on_text(message.text)
                except Exception:
                    logger.exception("Assistant text observer failed")

        elif isinstance(message, ToolUse):
            logger.info("Tool call %s (%s)", message.name, message.id)
            self._tools.handle(message)

        elif isinstance(message, TurnResult):
            self._resolve_turn(message)

        elif isinstance(message, SystemInit):
            self.model = message.model
            self.agent_session_id = message.session_id
            logger.info("Agent initialized (model=%s, cwd=%s)", message.model, message.cwd)

        elif isinstance(message, ToolResult):
            logger.debug("Agent acknowledged tool result %s", message.id)

    def _resolve_turn(self, result: TurnResult) -> None:
        self.results_received += 1
        if not result.success:
            logger.warning("Agent turn finished with %r", result.subtype or "error")

        delivered = False
        if self._waiters:
            future = self._waiters.popleft()
            if future.done():
                logger.info("Discarding result for an abandoned turn")
            else:
                future.set_result(result.text)
                delivered = True

        self._recorder.record(
            TurnResultEvent(
                ts="",
                seq=0,
                success=result.success,
                subtype=result.subtype,
                chars=len(result.text),
                waiter=delivered,
            )
        )

    # ------------------------------------------------------------------ #
    # Internal — state
    # ------------------------------------------------------------------ #

    def _ensure_open(self) -> None:
        if self._state is SessionState.CLOSED:
            raise self.exit_error or ChildProcessExit()
        if self._state is SessionState.STARTING:
            msg = "Agent session has not been started"
            raise RuntimeError(msg)

    def _close(self, error: ChildProcessExit) -> None:
        """Move to ``CLOSED`` and reject every pending waiter with *error*."""
        if self._state is not SessionState.CLOSED:
            self._state = SessionState.CLOSED
            self.exit_error = error
            if self._writer is not None:
                self._writer.close()

        rejected = 0
        while self._waiters:
            future = self._waiters.popleft()
            if not future.done():
                future.set_exception(self.exit_error or error)
                rejected += 1
        if rejected:
            logger.warning("Rejected %d pending turn(s): %s", rejected, error)

        # Unblock anyone stuck on a full outbound queue.
        while not self._outbound.empty():
            self._outbound.get_nowait()
            self._outbound.task_done()

        self.closed.set()

    def _record_sent(self, mode: str, text: str) -> None:
        self._recorder.count_turn()
        self._recorder.record(
            TurnSentEvent(ts="", seq=0, mode=mode, chars=len(text))  # type: ignore[arg-type]
        )
