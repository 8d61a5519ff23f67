"""ShutdownManager — orchestrates the graceful shutdown sequence."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

import click

from bridgeline.background_loop import BackgroundLoop
from bridgeline.session.multiplexer import AgentSession
from bridgeline.session.recorder import EndReason, SessionRecorder

logger = logging.getLogger(__name__)

Stopper = Callable[[], Awaitable[None]]


def _format_duration(seconds: float) -> str:
    """Format a duration as '1m 22s' or '34.2s'."""
    if seconds >= 60:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs:02d}s"
    return f"{seconds:.1f}s"


class ShutdownManager:
    """Orchestrates the 4-step graceful shutdown sequence.

    Steps:
        1. SIGNAL  -- set shutdown flag, stop sources and loops (the digest
                      loop does its final flush here)
        2. DRAIN   -- wait for in-flight tool handlers with timeout
        3. KILL    -- cancel handlers still running (each still answers)
        4. CLOSE   -- shut the agent down, write session_end, print summary
    """

    DRAIN_TIMEOUT = 10.0  # seconds

    def __init__(
        self,
        session: AgentSession,
        recorder: SessionRecorder,
        shutdown_event: asyncio.Event,
        loops: Sequence[BackgroundLoop] = (),
        stoppers: Sequence[Stopper] = (),
    ) -> None:
        self._session = session
        self._recorder = recorder
        self._shutdown_event = shutdown_event
        self._loops = loops
        self._stoppers = stoppers
        self._start_time = time.monotonic()
        self._done = False

    async def execute(self, reason: EndReason) -> None:
        """Run the full shutdown sequence.  Only the first call does work."""
        if self._done:
            return
        self._done = True
        await self._signal()
        drained = await self._drain()
        if not drained:
            await self._kill()
        await self._close(reason)

    # ------------------------------------------------------------------ #
    # Step 1: SIGNAL
    # ------------------------------------------------------------------ #

    async def _signal(self) -> None:
        self._shutdown_event.set()

        for stop in self._stoppers:
            try:
                await stop()
            except Exception:
                logger.exception("Error stopping event source")

        for loop in self._loops:
            try:
                await loop.stop()
            except Exception:
                logger.exception("Error stopping %s", type(loop).__name__)

    # ------------------------------------------------------------------ #
    # Step 2: DRAIN
    # ------------------------------------------------------------------ #

    async def _drain(self) -> bool:
        """Wait for in-flight tool calls.  Returns False if the timeout hit."""
        tools = self._session.tools
        if not tools.in_flight:
            return True

        click.echo("\nDraining in-flight tool calls...")
        drained = await tools.drain(timeout=self.DRAIN_TIMEOUT)
        if not drained:
            logger.warning("Drain timeout: %d tool call(s) still running", tools.in_flight)
        return drained

    # ------------------------------------------------------------------ #
    # Step 3: KILL
    # ------------------------------------------------------------------ #

    async def _kill(self) -> None:
        cancelled = await self._session.tools.cancel_all()
        if cancelled:
            click.echo(f"Cancelled {cancelled} remaining tool call(s).")

    # ------------------------------------------------------------------ #
    # Step 4: CLOSE
    # ------------------------------------------------------------------ #

    async def _close(self, reason: EndReason) -> None:
        try:
            await self._session.shutdown()
        except Exception:
            logger.exception("Error shutting down agent")

        self._recorder.end(reason)

        elapsed = time.monotonic() - self._start_time
        summary_parts = [
            f"\nSession ended ({reason})",
            _format_duration(elapsed),
            f"{self._recorder.event_count} events",
            f"{self._session.results_received} result(s)",
        ]
        click.echo(" | ".join(summary_parts), err=True)
        if self._recorder.session_file is not None:
            click.echo(f"Log: {self._recorder.session_file}", err=True)
