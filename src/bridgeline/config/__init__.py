"""Configuration models and parser for bridgeline.yaml."""

from bridgeline.config.models import (
    AgentConfig,
    BridgeConfig,
    DigestConfig,
    SeverityConfig,
    ToolsConfig,
    UptimeConfig,
    WebhookConfig,
)
from bridgeline.config.parser import ConfigError, load_config, with_overrides

__all__ = [
    "AgentConfig",
    "BridgeConfig",
    "ConfigError",
    "DigestConfig",
    "SeverityConfig",
    "ToolsConfig",
    "UptimeConfig",
    "WebhookConfig",
    "load_config",
    "with_overrides",
]
