"""Pydantic v2 models for bridge session log events."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _EventBase(BaseModel):
    """Common envelope fields shared by every session event."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    ts: str = Field(description="ISO 8601 timestamp with milliseconds")
    seq: int = Field(ge=0, description="Monotonic sequence number")


class SessionStartEvent(_EventBase):
    """Emitted once at the start of a session."""

    type: Literal["session_start"] = "session_start"
    session_id: str = Field(description="Unique session identifier")
    bridge: str = Field(description="Bridge front end name (digest, webhook, ...)")
    command: str = Field(description="Agent command line")


class SessionEndEvent(_EventBase):
    """Emitted once when a session ends."""

    type: Literal["session_end"] = "session_end"
    reason: Literal["complete", "user_shutdown", "agent_exit", "error"] = Field(
        description="Why the session ended",
    )
    duration_ms: int = Field(description="Total session duration in milliseconds")
    turns: int = Field(default=0, description="Number of turns sent to the agent")


class TurnSentEvent(_EventBase):
    """A user turn written to the agent."""

    type: Literal["turn_sent"] = "turn_sent"
    mode: Literal["await", "push"] = Field(description="Blocking or fire-and-forget")
    chars: int = Field(ge=0, description="Length of the turn text")


class TurnResultEvent(_EventBase):
    """A ``result`` frame consumed from the agent."""

    type: Literal["turn_result"] = "turn_result"
    success: bool = Field(description="Whether the turn succeeded")
    subtype: str = Field(default="", description="Raw result subtype")
    chars: int = Field(ge=0, description="Length of the accumulated reply")
    waiter: bool = Field(description="Whether a blocking caller received it")


class ToolCallEvent(_EventBase):
    """Emitted when the agent invokes a tool."""

    type: Literal["tool_call"] = "tool_call"
    tool_use_id: str = Field(description="Tool-use id")
    tool: str = Field(description="Tool name")
    args: dict[str, Any] = Field(description="Tool arguments")


class ToolResultEvent(_EventBase):
    """Emitted when a tool result frame is written back."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = Field(description="Tool-use id")
    tool: str = Field(description="Tool name")
    outcome: Literal["ok", "error", "timeout", "unknown_tool"] = Field(
        description="How the handler finished",
    )
    duration_ms: int = Field(description="Handler duration in milliseconds")
    result_size: int = Field(description="Size of the serialized result in bytes")


class DigestFlushEvent(_EventBase):
    """Statistics for one digest flush (the digest text is never stored)."""

    type: Literal["digest_flush"] = "digest_flush"
    source: str = Field(description="Digest label")
    events: int = Field(ge=0, description="Events ingested in the window")
    patterns: int = Field(ge=0, description="Distinct pattern buckets")
    routes: int = Field(ge=0, description="Distinct route buckets")
    chars: int = Field(ge=0, description="Length of the rendered digest")
    truncated: bool = Field(description="Whether the character budget was hit")


class StatusEvent(_EventBase):
    """Free-form status update."""

    type: Literal["status"] = "status"
    status: str = Field(description="Status message")


class ErrorEvent(_EventBase):
    """An error encountered during the session."""

    type: Literal["error"] = "error"
    error: str = Field(description="Error description")
    context: str | None = Field(
        default=None,
        description="Error context: subprocess, tool, transport, source, ...",
    )


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


SessionEvent = Annotated[
    Annotated[SessionStartEvent, Tag("session_start")]
    | Annotated[SessionEndEvent, Tag("session_end")]
    | Annotated[TurnSentEvent, Tag("turn_sent")]
    | Annotated[TurnResultEvent, Tag("turn_result")]
    | Annotated[ToolCallEvent, Tag("tool_call")]
    | Annotated[ToolResultEvent, Tag("tool_result")]
    | Annotated[DigestFlushEvent, Tag("digest_flush")]
    | Annotated[StatusEvent, Tag("status")]
    | Annotated[ErrorEvent, Tag("error")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all session event types."""
