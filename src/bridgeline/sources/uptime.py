"""UptimeMonitor — periodic URL probes, reporting only state changes."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Literal

from bridgeline.background_loop import BackgroundLoop
from bridgeline.constants import PushSink
from bridgeline.errors import BridgeError
from bridgeline.tools.http import fetch_async

logger = logging.getLogger(__name__)

Status = Literal["UP", "DOWN"]


def format_change(url: str, before: Status, after: Status, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(tz=UTC)).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    return f"[uptime] {url} changed: {before} → {after} at {stamp}"


class UptimeMonitor(BackgroundLoop):
    """Probes each URL every *interval* seconds.

    The first probe of a URL only establishes its baseline; afterwards a
    note is pushed whenever the status flips.
    """

    def __init__(
        self,
        urls: list[str],
        sink: PushSink,
        shutdown_event: asyncio.Event,
        interval: float = 15,
        timeout: float = 10,
    ) -> None:
        super().__init__(shutdown_event, interval)
        self._urls = list(urls)
        self._sink = sink
        self._timeout = timeout
        self.last: dict[str, Status] = {}

    def _should_start(self) -> bool:
        return bool(self._urls)

    async def start(self) -> None:
        # Baseline immediately rather than one interval in.
        if self._should_start():
            await self._tick()
        await super().start()

    async def probe(self, url: str) -> Status:
        try:
            result = await fetch_async(url, self._timeout)
        except (OSError, ValueError) as exc:
            logger.debug("Probe of %s failed: %s", url, exc)
            return "DOWN"
        return "UP" if result.ok else "DOWN"

    async def _tick(self) -> None:
        for url in self._urls:
            status = await self.probe(url)
            previous = self.last.get(url)
            self.last[url] = status
            if previous is None or previous == status:
                continue
            logger.info("%s is %s (was %s)", url, status, previous)
            try:
                await self._sink(format_change(url, previous, status))
            except BridgeError as exc:
                logger.warning("Uptime note not delivered: %s", exc)
