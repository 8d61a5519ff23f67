"""Stream-json message envelopes — inbound decoding and outbound builders."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

logger = logging.getLogger(__name__)


class _MessageBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AssistantChunk(_MessageBase):
    """A text block from an assistant message."""

    kind: Literal["assistant_chunk"] = "assistant_chunk"
    text: str = Field(description="Text content of the block")


class ToolUse(_MessageBase):
    """The agent asks the bridge to run a tool."""

    kind: Literal["tool_use"] = "tool_use"
    id: str = Field(description="Tool-use id; the reply must carry the same id")
    name: str = Field(description="Tool name")
    input: dict[str, Any] = Field(default_factory=dict, description="Tool input")


class ToolResult(_MessageBase):
    """The child echoing a tool result it has consumed."""

    kind: Literal["tool_result"] = "tool_result"
    id: str = Field(description="Tool-use id being acknowledged")
    payload: Any = Field(default=None, description="Result content as echoed")


class TurnResult(_MessageBase):
    """Terminal message of a turn."""

    kind: Literal["turn_result"] = "turn_result"
    text: str = Field(description="Accumulated assistant text for the turn")
    success: bool = Field(description="Whether the turn completed successfully")
    subtype: str = Field(default="", description="Raw result subtype")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="session_id, duration_ms, total_cost_usd, num_turns",
    )


class SystemInit(_MessageBase):
    """Initialization event emitted once by the child."""

    kind: Literal["system_init"] = "system_init"
    model: str | None = Field(default=None, description="Model in use")
    cwd: str | None = Field(default=None, description="Child working directory")
    session_id: str | None = Field(default=None, description="Child session id")


def _message_discriminator(v: Any) -> str:
    if isinstance(v, dict):
        return str(v.get("kind", ""))
    return str(getattr(v, "kind", ""))


Message = Annotated[
    Annotated[AssistantChunk, Tag("assistant_chunk")]
    | Annotated[ToolUse, Tag("tool_use")]
    | Annotated[ToolResult, Tag("tool_result")]
    | Annotated[TurnResult, Tag("turn_result")]
    | Annotated[SystemInit, Tag("system_init")],
    Discriminator(_message_discriminator),
]
"""Discriminated union of decoded inbound messages."""

#: ``result`` fields copied into ``TurnResult.metadata``.
_RESULT_METADATA_KEYS = ("session_id", "duration_ms", "total_cost_usd", "num_turns")


class EnvelopeDecoder:
    """Turns inbound JSON lines into ``Message`` values.

    Holds the assistant-text accumulator for the turn in progress: text
    blocks append to it and the next ``result`` event drains it into a
    ``TurnResult``.  An empty return list means the line was skipped.
    """

    def __init__(self) -> None:
        self._accumulator: list[str] = []

    @property
    def pending_text(self) -> str:
        """Assistant text accumulated since the last result."""
        return "".join(self._accumulator)

    def decode(self, line: str) -> list[Message]:
        """Decode one line; malformed or unknown frames yield ``[]``."""
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON line: %s", line[:200])
            return []
        if not isinstance(event, dict):
            return []
        return self.decode_event(event)

    def decode_event(self, event: dict[str, Any]) -> list[Message]:
        """Decode an already-parsed frame."""
        event_type = event.get("type")

        if event_type == "assistant":
            return self._decode_assistant(event)
        if event_type == "result":
            return [self._decode_result(event)]
        if event_type == "system":
            subtype = event.get("subtype")
            if subtype not in (None, "init"):
                return []
            return [
                SystemInit(
                    model=_opt_str(event.get("model")),
                    cwd=_opt_str(event.get("cwd")),
                    session_id=_opt_str(event.get("session_id")),
                )
            ]
        if event_type == "user":
            return self._decode_user(event)

        logger.debug("Skipping frame with unknown type %r", event_type)
        return []

    def reset(self) -> None:
        self._accumulator.clear()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _decode_assistant(self, event: dict[str, Any]) -> list[Message]:
        out: list[Message] = []
        for block in _content_blocks(event):
            block_type = block.get("type")
            if block_type == "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    self._accumulator.append(text)
                    out.append(AssistantChunk(text=text))
            elif block_type == "tool_use":
                tool_id = block.get("id")
                if not isinstance(tool_id, str) or not tool_id:
                    logger.warning("tool_use block without an id, ignoring")
                    continue
                tool_input = block.get("input")
                if not isinstance(tool_input, dict):
                    tool_input = {}
                out.append(
                    ToolUse(id=tool_id, name=str(block.get("name", "")), input=tool_input)
                )
        return out

    def _decode_user(self, event: dict[str, Any]) -> list[Message]:
        out: list[Message] = []
        for block in _content_blocks(event):
            if block.get("type") != "tool_result":
                continue
            tool_id = block.get("tool_use_id")
            if isinstance(tool_id, str) and tool_id:
                out.append(ToolResult(id=tool_id, payload=block.get("content")))
        return out

    def _decode_result(self, event: dict[str, Any]) -> TurnResult:
        text = self.pending_text.strip()
        self._accumulator.clear()
        if not text:
            fallback = event.get("result")
            if isinstance(fallback, str):
                text = fallback.strip()

        subtype = str(event.get("subtype") or "")
        success = subtype == "success" and event.get("is_error") is not True
        metadata = {k: event[k] for k in _RESULT_METADATA_KEYS if k in event}
        return TurnResult(text=text, success=success, subtype=subtype, metadata=metadata)


def _content_blocks(event: dict[str, Any]) -> list[dict[str, Any]]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    blocks = message.get("content")
    if not isinstance(blocks, list):
        return []
    return [b for b in blocks if isinstance(b, dict)]


def _opt_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


# ------------------------------------------------------------------ #
# Outbound builders
# ------------------------------------------------------------------ #


def user_text_message(text: str) -> dict[str, Any]:
    """A ``user`` turn carrying one text block."""
    return {
        "type": "user",
        "message": {"role": "user", "content": [{"type": "text", "text": text}]},
    }


def tool_result_message(tool_use_id: str, content: str) -> dict[str, Any]:
    """A ``user`` frame answering the tool call *tool_use_id*."""
    return {
        "type": "user",
        "message": {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": tool_use_id, "content": content}
            ],
        },
    }
