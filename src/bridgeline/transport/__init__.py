"""Line transport — newline-delimited JSON framing over byte streams."""

from bridgeline.transport.framing import (
    FrameWriter,
    encode_frame,
    parse_frame,
    read_frames,
)

__all__ = [
    "FrameWriter",
    "encode_frame",
    "parse_frame",
    "read_frames",
]
