"""Tool round-trip support."""

from bridgeline.tools.adapter import ToolAdapter
from bridgeline.tools.http import handle_http_get

__all__ = [
    "ToolAdapter",
    "handle_http_get",
]
