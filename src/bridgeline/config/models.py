"""Pydantic v2 models for bridgeline.yaml configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bridgeline.constants import DEFAULT_AGENT_COMMAND

#: Tools that can be switched on from config.
KNOWN_TOOLS = ("http_get",)


class AgentConfig(BaseModel):
    """How to run the agent subprocess."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(
        default=DEFAULT_AGENT_COMMAND,
        description="Command line of the stream-json agent process",
    )
    init: str | None = Field(
        default=None,
        description="Initial instruction pushed right after start-up",
    )
    turn_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds a blocking turn may wait for its result (none = forever)",
    )
    write_queue_size: int = Field(
        default=100,
        ge=1,
        description="Outbound frames buffered before senders block",
    )
    cwd: str | None = Field(
        default=None,
        description="Working directory for the agent process",
    )

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "Agent command must not be empty"
            raise ValueError(msg)
        return v


class SeverityConfig(BaseModel):
    """Keywords that classify a line, checked error > warn > info > debug."""

    model_config = ConfigDict(extra="forbid")

    error: list[str] = Field(default_factory=lambda: ["error"])
    warn: list[str] = Field(default_factory=lambda: ["warn", "warning"])
    info: list[str] = Field(default_factory=lambda: ["info"])
    debug: list[str] = Field(default_factory=lambda: ["debug"])

    @field_validator("error", "warn", "info", "debug")
    @classmethod
    def _normalize_keywords(cls, v: list[str]) -> list[str]:
        cleaned = [k.strip().lower() for k in v if k.strip()]
        if not cleaned:
            msg = "Severity keyword list must not be empty"
            raise ValueError(msg)
        return cleaned


class DigestConfig(BaseModel):
    """Window and rendering limits for the digest aggregator."""

    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=300, gt=0, description="Flush interval in seconds")
    max_chars: int = Field(default=3500, ge=200, description="Character budget per digest")
    top: int = Field(default=8, ge=1, description="Ranked buckets shown per section")
    samples: int = Field(default=2, ge=0, description="Exemplar lines kept per pattern")
    reservoir_size: int = Field(
        default=5000, ge=1, description="Latency samples kept per window"
    )
    max_latency_ms: float = Field(
        default=10_000, gt=0, description="Latency values are clamped to this"
    )
    key_length: int = Field(default=180, ge=16, description="Max normalized key length")
    sample_length: int = Field(default=240, ge=16, description="Max exemplar length")
    severity: SeverityConfig = Field(default_factory=SeverityConfig)


class ToolsConfig(BaseModel):
    """Tool round-trip settings."""

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=10.0, gt=0, description="Per-call handler timeout")
    preview_chars: int = Field(
        default=2000, ge=1, description="Text results are truncated to this length"
    )
    enabled: list[str] = Field(
        default_factory=list, description="Built-in tools to register"
    )

    @field_validator("enabled")
    @classmethod
    def _known_tools(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - set(KNOWN_TOOLS))
        if unknown:
            joined = ", ".join(f"'{n}'" for n in unknown)
            msg = f"Unknown tools: {joined} (available: {', '.join(KNOWN_TOOLS)})"
            raise ValueError(msg)
        return v


class WebhookConfig(BaseModel):
    """HTTP listener for the webhook bridge."""

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8787, ge=1, le=65535)
    path: str = Field(default="/hook", description="POST endpoint path")

    @field_validator("path")
    @classmethod
    def _absolute_path(cls, v: str) -> str:
        if not v.startswith("/"):
            msg = "Webhook path must start with '/'"
            raise ValueError(msg)
        return v


class UptimeConfig(BaseModel):
    """URLs and cadence for the uptime bridge."""

    model_config = ConfigDict(extra="forbid")

    urls: list[str] = Field(default_factory=list)
    interval: float = Field(default=15, gt=0, description="Probe interval in seconds")
    timeout: float = Field(default=10, gt=0, description="Per-probe network timeout")

    @field_validator("urls")
    @classmethod
    def _http_urls(cls, v: list[str]) -> list[str]:
        bad = [u for u in v if not u.startswith(("http://", "https://"))]
        if bad:
            msg = f"Uptime URLs must be http(s): {', '.join(bad)}"
            raise ValueError(msg)
        return v


class BridgeConfig(BaseModel):
    """Top-level bridgeline.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    agent: AgentConfig = Field(default_factory=AgentConfig)
    digest: DigestConfig = Field(default_factory=DigestConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    uptime: UptimeConfig = Field(default_factory=UptimeConfig)
    record: bool = Field(default=True, description="Write a JSONL session log")
    sessions_dir: str = Field(default="sessions", description="Session log directory")
