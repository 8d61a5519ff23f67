"""DigestAggregator — windowed ingestion with a periodic, budgeted flush."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from bridgeline.background_loop import BackgroundLoop
from bridgeline.config.models import DigestConfig
from bridgeline.constants import PushSink
from bridgeline.digest.normalize import SeverityClassifier
from bridgeline.digest.render import RenderedDigest, render_digest, render_multi
from bridgeline.digest.window import Window
from bridgeline.errors import BridgeError
from bridgeline.session.events import DigestFlushEvent
from bridgeline.session.recorder import NullRecorder, SessionRecorder

logger = logging.getLogger(__name__)


class DigestAggregator(BackgroundLoop):
    """Compresses raw events into one digest per interval.

    With zero or one source a single window is kept.  With several sources
    each gets its own window and a flush renders the combined
    ``[logs:multi]`` digest.

    A flush always swaps in fresh windows before rendering, so ingestion
    that happens while the sink is awaited lands in the next window.
    """

    def __init__(
        self,
        config: DigestConfig,
        sink: PushSink,
        shutdown_event: asyncio.Event,
        label: str = "logs",
        sources: Sequence[str] | None = None,
        recorder: SessionRecorder | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(shutdown_event, config.interval)
        self._config = config
        self._sink = sink
        self._label = label
        self._recorder = recorder or NullRecorder()
        self._clock = clock
        self._classifier = SeverityClassifier(config.severity)
        self._sources = list(dict.fromkeys(sources or ()))
        self._windows = self._fresh_windows()
        self.flush_count = 0

    @property
    def multi(self) -> bool:
        return len(self._sources) > 1

    @property
    def pending_events(self) -> int:
        return sum(w.total for w in self._windows.values())

    def window(self, source: str | None = None) -> Window:
        """Current window for *source* (the only window in single mode)."""
        if not self.multi:
            return self._windows[""]
        key = source or self._sources[0]
        window = self._windows.get(key)
        if window is None:
            logger.debug("New digest source %r", key)
            self._sources.append(key)
            window = self._windows[key] = Window(started=self._clock())
        return window

    # ------------------------------------------------------------------ #
    # Ingestion
    # ------------------------------------------------------------------ #

    def ingest_line(self, text: str, source: str | None = None) -> str:
        """Count one raw text line.  Returns the severity it was filed under."""
        return self.window(source).observe_line(text, self._config, self._classifier)

    def ingest_record(self, record: dict[str, Any], source: str | None = None) -> str:
        """Count one structured (JSON object) record."""
        return self.window(source).observe_record(record, self._config, self._classifier)

    # ------------------------------------------------------------------ #
    # Flush
    # ------------------------------------------------------------------ #

    async def flush(self) -> str | None:
        """Render and send the current window; ``None`` if it was empty."""
        detached = self._windows
        self._windows = self._fresh_windows()

        if all(w.empty for w in detached.values()):
            logger.debug("Digest window empty, nothing sent")
            return None

        now = self._clock()
        if self.multi:
            rendered = render_multi(detached, self._config, now)
        else:
            rendered = render_digest(detached[""], self._config, self._label, now)

        await self._sink(rendered.text)
        self.flush_count += 1
        self._record_flush(detached, rendered)
        return rendered.text

    def _record_flush(self, windows: dict[str, Window], rendered: RenderedDigest) -> None:
        events = sum(w.total for w in windows.values())
        patterns = sum(len(w.patterns) for w in windows.values())
        routes = sum(len(w.routes) for w in windows.values())
        logger.info(
            "Digest flushed: %d events, %d patterns, %d chars%s",
            events,
            patterns,
            len(rendered.text),
            " (truncated)" if rendered.truncated else "",
        )
        self._recorder.record(
            DigestFlushEvent(
                ts="",
                seq=0,
                source="multi" if self.multi else self._label,
                events=events,
                patterns=patterns,
                routes=routes,
                chars=len(rendered.text),
                truncated=rendered.truncated,
            )
        )

    def _fresh_windows(self) -> dict[str, Window]:
        started = self._clock()
        if not self.multi:
            return {"": Window(started=started)}
        return {source: Window(started=started) for source in self._sources}

    # ------------------------------------------------------------------ #
    # BackgroundLoop hooks
    # ------------------------------------------------------------------ #

    async def _tick(self) -> None:
        try:
            await self.flush()
        except BridgeError as exc:
            logger.warning("Digest flush failed: %s", exc)

    async def _on_stop(self) -> None:
        # One last flush so the tail of the final window is not lost.
        try:
            await self.flush()
        except BridgeError as exc:
            logger.debug("Final digest flush dropped: %s", exc)
