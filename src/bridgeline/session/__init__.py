"""Agent session — message envelopes, event log, and the stream-json multiplexer.

``AgentSession`` lives in ``bridgeline.session.multiplexer``; it is not
re-exported here because the tool adapter imports the event models from
this package.
"""

from bridgeline.session.events import (
    DigestFlushEvent,
    ErrorEvent,
    SessionEndEvent,
    SessionEvent,
    SessionStartEvent,
    StatusEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnResultEvent,
    TurnSentEvent,
)
from bridgeline.session.messages import (
    AssistantChunk,
    EnvelopeDecoder,
    Message,
    SystemInit,
    ToolResult,
    ToolUse,
    TurnResult,
    tool_result_message,
    user_text_message,
)
from bridgeline.session.recorder import EndReason, NullRecorder, SessionRecorder

__all__ = [
    "AssistantChunk",
    "DigestFlushEvent",
    "EndReason",
    "EnvelopeDecoder",
    "ErrorEvent",
    "Message",
    "NullRecorder",
    "SessionEndEvent",
    "SessionEvent",
    "SessionRecorder",
    "SessionStartEvent",
    "StatusEvent",
    "SystemInit",
    "ToolCallEvent",
    "ToolResult",
    "ToolResultEvent",
    "ToolUse",
    "TurnResult",
    "TurnResultEvent",
    "TurnSentEvent",
    "tool_result_message",
    "user_text_message",
]
