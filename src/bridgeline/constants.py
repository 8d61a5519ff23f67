"""Shared constants and type aliases for the bridgeline runtime."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

#: Default child command: Claude CLI speaking stream-json on both pipes.
DEFAULT_AGENT_COMMAND = (
    "claude -p --output-format=stream-json --input-format=stream-json --verbose"
)

#: StreamReader byte limit for a subprocess pipe (1 MB).
MAX_LINE_BYTES = 1_048_576

#: Maximum decoded characters per line before read_frames drops it.
MAX_FRAME_CHARS = 1_048_576

#: Callback type for assistant text observers.
TextCallback = Callable[[str], Awaitable[None]]

#: Coroutine that delivers digest / event text to the agent.
PushSink = Callable[[str], Awaitable[None]]

#: Tool handler signature: receives the tool ``input`` object.
ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]
