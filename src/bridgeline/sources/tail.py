"""Follow growing log files through a ``tail -F`` subprocess."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from bridgeline.transport.framing import read_frames

logger = logging.getLogger(__name__)

#: Seconds to wait for ``tail`` to exit after SIGTERM.
_TERMINATE_WAIT = 2.0


class TailSource:
    """Yields lines appended to *path*, surviving rotation (``tail -F``).

    Only new lines are produced unless *from_start* is set.
    """

    def __init__(self, path: str, from_start: bool = False) -> None:
        self.path = path
        self._from_start = from_start
        self._process: asyncio.subprocess.Process | None = None

    @property
    def args(self) -> list[str]:
        return ["tail", "-n", "+1" if self._from_start else "0", "-F", self.path]

    async def lines(self) -> AsyncIterator[str]:
        """Spawn ``tail`` and yield its lines until it exits or :meth:`stop`."""
        self._process = await asyncio.create_subprocess_exec(
            *self.args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        logger.info("Tailing %s (pid %s)", self.path, self._process.pid)
        assert self._process.stdout is not None
        try:
            async for line in read_frames(self._process.stdout):
                yield line
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Terminate the ``tail`` process.  Idempotent."""
        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_WAIT)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
        logger.debug("Stopped tail of %s", self.path)


def format_log_line(path: str, line: str) -> str:
    """Event text for a single forwarded log line."""
    return f"[log:{path}] {line}"


def matches(line: str, needle: str | None) -> bool:
    """Plain substring filter; no needle matches everything."""
    return not needle or needle in line


def parse_record(line: str) -> dict[str, Any] | None:
    """JSON-decode a structured log line.

    Non-JSON lines are common in mixed logs, so they are skipped quietly.
    """
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping non-JSON log line")
        return None
    return obj if isinstance(obj, dict) else None
