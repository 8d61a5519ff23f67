"""Exception hierarchy shared by the transport, session and tool layers."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridgeline runtime errors."""


class TransportClosedError(BridgeError):
    """Raised when writing to a sink that has been closed or broken."""


class FrameEncodeError(BridgeError):
    """Raised when an outbound message cannot be serialized to JSON."""


class ChildProcessExit(BridgeError):
    """The agent subprocess exited; pending and future turns cannot complete."""

    def __init__(self, returncode: int | None = None) -> None:
        self.returncode = returncode
        if returncode is None:
            msg = "Agent process closed"
        else:
            msg = f"Agent process closed (exit code {returncode})"
        super().__init__(msg)


class TurnTimeoutError(BridgeError):
    """A blocking turn did not produce a result within its timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"No result from agent after {timeout:g}s")


class ToolHandlerError(BridgeError):
    """A tool handler failed; converted into an error payload, never raised out."""
