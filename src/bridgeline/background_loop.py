"""BackgroundLoop — base class for periodic async work.

Shared by the digest flush timer and the uptime prober.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """Sleep-then-tick loop that stops on the shared shutdown event.

    Subclasses override :meth:`_tick` and optionally :meth:`_should_start`
    and :meth:`_on_stop`.
    """

    #: Longest single sleep, so shutdown is noticed promptly.
    SLEEP_CHUNK = 1.0

    def __init__(
        self,
        shutdown_event: asyncio.Event,
        interval: float,
    ) -> None:
        self._shutdown_event = shutdown_event
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Start the loop if :meth:`_should_start` allows."""
        if not self._should_start():
            logger.debug("%s not started", type(self).__name__)
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Cancel the loop task, then run :meth:`_on_stop`."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        await self._on_stop()

    # ------------------------------------------------------------------ #
    # Override points
    # ------------------------------------------------------------------ #

    def _should_start(self) -> bool:
        return True

    async def _tick(self) -> None:
        raise NotImplementedError

    async def _on_stop(self) -> None:
        """Final work after the loop has stopped.  Default: nothing."""

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _shutdown_aware_sleep(self, duration: float) -> bool:
        """Sleep in short chunks; ``True`` if shutdown was signalled."""
        elapsed = 0.0
        while elapsed < duration:
            if self._shutdown_event.is_set():
                return True
            step = min(self.SLEEP_CHUNK, duration - elapsed)
            await asyncio.sleep(step)
            elapsed += step
        return self._shutdown_event.is_set()

    async def _loop(self) -> None:
        try:
            while not self._shutdown_event.is_set():
                if await self._shutdown_aware_sleep(self._interval):
                    return
                await self._tick()
        except asyncio.CancelledError:
            return
