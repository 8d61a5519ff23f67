"""Event sources feeding the agent: tailed files, webhooks, uptime probes."""

from bridgeline.sources.tail import TailSource, format_log_line, matches, parse_record
from bridgeline.sources.uptime import UptimeMonitor, format_change
from bridgeline.sources.webhook import WebhookServer, format_event

__all__ = [
    "TailSource",
    "UptimeMonitor",
    "WebhookServer",
    "format_change",
    "format_event",
    "format_log_line",
    "matches",
    "parse_record",
]
