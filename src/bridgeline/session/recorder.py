"""Session recorder — append-only JSONL log of bridge events."""

from __future__ import annotations

import re
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Literal

from bridgeline.session.events import SessionEndEvent, SessionEvent, SessionStartEvent

#: Valid bridge name pattern — alphanumeric, hyphens, underscores only.
_SAFE_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

EndReason = Literal["complete", "user_shutdown", "agent_exit", "error"]


class SessionRecorder:
    """Records session events to an append-only JSONL file.

    Thread-safe: all writes are serialized through a ``threading.Lock``.
    Crash-safe: the file is flushed after every event.
    """

    def __init__(
        self,
        bridge: str,
        command: str,
        sessions_dir: Path | None = None,
    ) -> None:
        if not _SAFE_NAME_RE.match(bridge):
            msg = (
                f"Invalid bridge name {bridge!r}: must contain only "
                "alphanumeric characters, hyphens, and underscores."
            )
            raise ValueError(msg)

        self._bridge = bridge
        self._lock = threading.Lock()
        self._seq = 0
        self._turns = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()
        self._session_id = uuid.uuid4().hex[:12]

        if sessions_dir is None:
            sessions_dir = Path("sessions")
        sessions_dir.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        self._session_file = sessions_dir / f"{date_str}_{bridge}_{self._session_id}.jsonl"

        self._fh: IO[str] | None = None
        try:
            self._fh = self._session_file.open("a", encoding="utf-8")
            self.record(
                SessionStartEvent(
                    ts="",  # placeholder — record() overwrites
                    seq=0,  # placeholder — record() overwrites
                    session_id=self._session_id,
                    bridge=bridge,
                    command=command,
                )
            )
        except Exception:
            self._close_handle()
            raise

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        """Unique session identifier (12-char hex)."""
        return self._session_id

    @property
    def session_file(self) -> Path | None:
        """Path to the JSONL file."""
        return self._session_file

    @property
    def event_count(self) -> int:
        """Number of events recorded so far."""
        return self._seq

    def count_turn(self) -> None:
        """Bump the turn counter reported in ``session_end``."""
        self._turns += 1

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, event: SessionEvent) -> None:
        """Write *event* to the JSONL file.

        Stamps ``ts`` and ``seq``, then flushes to disk.  Events recorded
        after ``close()`` are dropped.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            event.seq = self._seq
            event.ts = _iso_now()
            self._seq += 1
            self._fh.write(event.model_dump_json(by_alias=True) + "\n")
            self._fh.flush()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def end(self, reason: EndReason) -> None:
        """Write a ``session_end`` event and close the file.  Idempotent."""
        if self._closed:
            return
        duration_ms = int((time.monotonic_ns() - self._start_ns) / 1_000_000)
        self.record(
            SessionEndEvent(
                ts="",
                seq=0,
                reason=reason,
                duration_ms=duration_ms,
                turns=self._turns,
            )
        )
        self.close()

    def close(self) -> None:
        """Close the file **without** writing a ``session_end`` event."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._close_handle()

    def _close_handle(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()


class NullRecorder(SessionRecorder):
    """Recorder that keeps counters but writes nothing (``--no-record``)."""

    def __init__(self, bridge: str = "bridge", command: str = "") -> None:
        self._bridge = bridge
        self._lock = threading.Lock()
        self._seq = 0
        self._turns = 0
        self._closed = False
        self._start_ns = time.monotonic_ns()
        self._session_id = uuid.uuid4().hex[:12]
        self._session_file = None  # type: ignore[assignment]
        self._fh = None

    def record(self, event: SessionEvent) -> None:
        with self._lock:
            if not self._closed:
                self._seq += 1


def _iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
