"""Tool round-trip adapter — runs handlers for ``tool_use`` and always replies."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from bridgeline.constants import ToolHandler
from bridgeline.errors import BridgeError, ToolHandlerError
from bridgeline.session.events import ErrorEvent, ToolCallEvent, ToolResultEvent
from bridgeline.session.messages import ToolUse

if TYPE_CHECKING:
    from bridgeline.session.recorder import SessionRecorder

logger = logging.getLogger(__name__)

#: Default per-call handler timeout in seconds.
DEFAULT_TOOL_TIMEOUT = 10.0

#: Default max characters kept from a text result.
DEFAULT_PREVIEW_CHARS = 2000

ResultSender = Callable[[str, str], Awaitable[None]]


class ToolAdapter:
    """Executes registered tool handlers and writes exactly one result per id.

    ``handle`` is fire-and-forget from the session's point of view: it
    schedules a task and returns.  Whatever happens inside the handler
    (unknown name, exception, timeout) the task finishes by sending one
    ``tool_result`` frame carrying the same ``tool_use_id``; otherwise the
    agent's turn would block forever.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
        recorder: SessionRecorder | None = None,
    ) -> None:
        self._timeout = timeout
        self._preview_chars = preview_chars
        self._recorder = recorder
        self._handlers: dict[str, ToolHandler] = {}
        self._send: ResultSender | None = None
        self._answered: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register_handler(self, name: str, fn: ToolHandler) -> None:
        """Register *fn* for tool *name*."""
        if not name:
            msg = "Tool name must not be empty"
            raise ValueError(msg)
        if name in self._handlers:
            msg = f"Tool {name!r} is already registered"
            raise ValueError(msg)
        self._handlers[name] = fn

    @property
    def names(self) -> list[str]:
        return sorted(self._handlers)

    def bind(self, send: ResultSender) -> None:
        """Set the coroutine used to write ``tool_result`` frames."""
        self._send = send

    def attach_recorder(self, recorder: SessionRecorder) -> None:
        if self._recorder is None:
            self._recorder = recorder

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def handle(self, tool_use: ToolUse) -> None:
        """Schedule *tool_use*; the result frame is written asynchronously."""
        if tool_use.id in self._answered:
            logger.warning("Duplicate tool_use id %s ignored", tool_use.id)
            return
        self._answered.add(tool_use.id)

        task = asyncio.create_task(self._run(tool_use))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight handlers.  Returns ``False`` on timeout."""
        pending = list(self._tasks)
        if not pending:
            return True
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        return not still_running

    async def cancel_all(self) -> int:
        """Cancel in-flight handlers; each still sends its error result."""
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)

    async def execute(self, tool_use: ToolUse) -> tuple[str, str]:
        """Run the handler for *tool_use*.

        Returns ``(content, outcome)`` where *content* is the string placed
        in the ``tool_result`` frame.  Never raises.
        """
        handler = self._handlers.get(tool_use.name)
        if handler is None:
            return (
                _dump({"error": f"unknown tool: {tool_use.name}", "tool": tool_use.name}),
                "unknown_tool",
            )

        try:
            result = await asyncio.wait_for(handler(tool_use.input), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Tool %s (%s) timed out", tool_use.name, tool_use.id)
            return (
                _dump({"error": f"tool '{tool_use.name}' timed out after {self._timeout:g}s"}),
                "timeout",
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            err = ToolHandlerError(str(exc) or type(exc).__name__)
            logger.warning("Tool %s (%s) failed: %s", tool_use.name, tool_use.id, err)
            return _dump({"error": str(err), "type": type(exc).__name__}), "error"

        try:
            return self._render(result), "ok"
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Tool %s (%s) returned an unencodable result: %s", tool_use.name, tool_use.id, exc
            )
            return (
                _dump({"error": f"unencodable result: {exc}", "type": type(exc).__name__}),
                "error",
            )

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _run(self, tool_use: ToolUse) -> None:
        self._record(
            ToolCallEvent(
                ts="", seq=0, tool_use_id=tool_use.id, tool=tool_use.name, args=tool_use.input
            )
        )
        start = time.monotonic()
        try:
            content, outcome = await self.execute(tool_use)
        except asyncio.CancelledError:
            # Shutting down: still answer so the turn is not left hanging.
            await self._deliver(
                tool_use, _dump({"error": "tool cancelled: bridge shutting down"})
            )
            raise

        elapsed_ms = int((time.monotonic() - start) * 1000)
        await self._deliver(tool_use, content)
        self._record(
            ToolResultEvent(
                ts="",
                seq=0,
                tool_use_id=tool_use.id,
                tool=tool_use.name,
                outcome=outcome,  # type: ignore[arg-type]
                duration_ms=elapsed_ms,
                result_size=len(content.encode()),
            )
        )

    async def _deliver(self, tool_use: ToolUse, content: str) -> None:
        if self._send is None:
            logger.error("No result sender bound; dropping result for %s", tool_use.id)
            return
        try:
            await self._send(tool_use.id, content)
        except BridgeError as exc:
            logger.error("Failed to write tool result for %s: %s", tool_use.id, exc)
            self._record(
                ErrorEvent(ts="", seq=0, error=f"tool result not delivered: {exc}", context="tool")
            )

    def _render(self, result: Any) -> str:
        limit = self._preview_chars
        if result is None:
            return ""
        if isinstance(result, str):
            return result[:limit]
        if isinstance(result, dict):
            result = {
                k: (v[:limit] if isinstance(v, str) else v) for k, v in result.items()
            }
        return _dump(result)

    def _record(self, event: Any) -> None:
        if self._recorder is not None:
            self._recorder.record(event)


def _dump(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, default=str)
