"""Newline-delimited JSON framing over subprocess pipes."""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

from bridgeline.constants import MAX_FRAME_CHARS
from bridgeline.errors import FrameEncodeError, TransportClosedError

logger = logging.getLogger(__name__)

#: Bytes requested per read from the underlying stream.
_READ_CHUNK = 65_536

#: Max characters of a bad line to include in a log message.
_LOG_PREVIEW = 200


class ByteSource(Protocol):
    """Anything with an ``asyncio.StreamReader``-style ``read``."""

    async def read(self, n: int = -1) -> bytes: ...


class ByteSink(Protocol):
    """Anything with an ``asyncio.StreamWriter``-style write/drain pair."""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def is_closing(self) -> bool: ...


async def read_frames(
    stream: ByteSource,
    max_line: int = MAX_FRAME_CHARS,
) -> AsyncIterator[str]:
    """Yield complete text lines from *stream* until EOF.

    Partial UTF-8 sequences and partial lines are carried across chunk
    boundaries.  Blank lines are skipped.  A non-empty line left over at EOF
    without a trailing newline is yielded as the final frame.  Lines longer
    than *max_line* characters are dropped and reading resumes after the
    next newline.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buf = ""
    discarding = False

    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        buf += decoder.decode(chunk)

        while True:
            idx = buf.find("\n")
            if idx < 0:
                break
            line = buf[:idx]
            buf = buf[idx + 1 :]
            if discarding:
                # Tail end of an oversized line.
                discarding = False
                continue
            line = line.rstrip("\r")
            if len(line) > max_line:
                logger.warning("Frame exceeds %d characters, skipping", max_line)
                continue
            if line.strip():
                yield line

        if len(buf) > max_line:
            logger.warning("Frame exceeds %d characters, skipping", max_line)
            buf = ""
            discarding = True

    buf += decoder.decode(b"", final=True)
    if not discarding and buf.strip() and len(buf.rstrip("\r")) <= max_line:
        yield buf.rstrip("\r")


def parse_frame(line: str) -> dict[str, Any] | None:
    """Decode one inbound JSON line; malformed input is logged and dropped."""
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        logger.warning("Malformed JSON frame: %s", line[:_LOG_PREVIEW])
        return None
    if not isinstance(obj, dict):
        logger.warning("Ignoring non-object frame: %s", line[:_LOG_PREVIEW])
        return None
    return obj


def encode_frame(message: dict[str, Any]) -> bytes:
    """Serialize *message* as one compact JSON line terminated by ``\\n``."""
    try:
        text = json.dumps(message, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        msg = f"Cannot encode outbound frame: {exc}"
        raise FrameEncodeError(msg) from exc
    return (text + "\n").encode("utf-8")


class FrameWriter:
    """Serializes frames onto a sink, one write per frame, awaiting drain.

    A lock spans ``write`` + ``drain`` so concurrent callers never
    interleave bytes, and nobody writes again until the OS pipe buffer has
    room.
    """

    def __init__(self, sink: ByteSink) -> None:
        self._sink = sink
        self._lock = asyncio.Lock()
        self._closed = False
        self.frames_written = 0

    @property
    def closed(self) -> bool:
        return self._closed or self._sink.is_closing()

    async def write(self, message: dict[str, Any]) -> None:
        """Encode and write *message*, then wait for the sink to drain."""
        data = encode_frame(message)
        async with self._lock:
            if self.closed:
                msg = "Cannot write frame: sink is closed"
                raise TransportClosedError(msg)
            try:
                self._sink.write(data)
                await self._sink.drain()
            except (BrokenPipeError, ConnectionResetError) as exc:
                self._closed = True
                msg = f"Cannot write frame: {exc}"
                raise TransportClosedError(msg) from exc
            self.frames_written += 1

    def close(self) -> None:
        """Mark the writer closed; later writes raise ``TransportClosedError``."""
        self._closed = True
