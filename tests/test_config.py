"""Tests for bridgeline.yaml models, loading, and overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

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
from bridgeline.constants import DEFAULT_AGENT_COMMAND

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _minimal_raw(**overrides: Any) -> dict[str, Any]:
    """Return a small valid config dict, optionally merged with overrides."""
    base: dict[str, Any] = {
        "version": "1",
        "agent": {"command": "claude -p"},
    }
    base.update(overrides)
    return base


def _write_yaml(path: Path, data: dict[str, Any]) -> Path:
    path.write_text(yaml.dump(data, default_flow_style=False))
    return path


# ===================================================================
# Model tests
# ===================================================================


class TestDefaults:
    def test_empty_config_is_valid(self) -> None:
        config = BridgeConfig.model_validate({})
        assert config.agent.command == DEFAULT_AGENT_COMMAND
        assert config.agent.turn_timeout is None
        assert config.digest.interval == 300
        assert config.digest.max_chars == 3500
        assert config.digest.top == 8
        assert config.digest.samples == 2
        assert config.record is True
        assert config.sessions_dir == "sessions"

    def test_webhook_and_uptime_defaults(self) -> None:
        config = BridgeConfig()
        assert config.webhook.port == 8787
        assert config.webhook.path == "/hook"
        assert config.uptime.urls == []
        assert config.uptime.interval == 15


class TestValidation:
    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig.model_validate(_minimal_raw(surprise=True))

    def test_blank_agent_command(self) -> None:
        with pytest.raises(ValidationError, match="must not be empty"):
            AgentConfig(command="   ")

    def test_budget_floor(self) -> None:
        with pytest.raises(ValidationError):
            DigestConfig(max_chars=199)

    def test_minimum_budget_accepted_with_default_sample_length(self) -> None:
        config = BridgeConfig.model_validate(_minimal_raw(digest={"max_chars": 200}))
        assert config.digest.max_chars == 200
        assert config.digest.sample_length == 240

        merged = with_overrides(BridgeConfig(), {"digest": {"max_chars": 200}})
        assert merged.digest.max_chars == 200

    def test_severity_keywords_lowercased(self) -> None:
        severity = SeverityConfig(error=[" FATAL ", "", "Panic"])
        assert severity.error == ["fatal", "panic"]

    def test_empty_severity_list_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SeverityConfig(warn=["  "])

    def test_unknown_tool_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown tools"):
            ToolsConfig(enabled=["rm_rf"])

    def test_webhook_path_must_be_absolute(self) -> None:
        with pytest.raises(ValidationError):
            WebhookConfig(path="hook")

    def test_uptime_urls_must_be_http(self) -> None:
        with pytest.raises(ValidationError, match="http"):
            UptimeConfig(urls=["ftp://example.com"])


# ===================================================================
# Loader tests
# ===================================================================


class TestLoadConfig:
    def test_explicit_file(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path / "bridgeline.yaml",
            _minimal_raw(digest={"interval": 60, "top": 3}),
        )
        config = load_config(path)
        assert config.agent.command == "claude -p"
        assert config.digest.interval == 60
        assert config.digest.top == 3

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_defaults_when_no_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config == BridgeConfig()

    def test_discovers_file_in_cwd(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_yaml(tmp_path / "bridgeline.yaml", _minimal_raw(record=False))
        monkeypatch.chdir(tmp_path)
        assert load_config().record is False

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "bridgeline.yaml"
        path.write_text("")
        assert load_config(path) == BridgeConfig()

    def test_bad_yaml_reports_position(self, tmp_path: Path) -> None:
        path = tmp_path / "bridgeline.yaml"
        path.write_text("agent:\n  command: [unclosed\n")
        with pytest.raises(ConfigError, match=r"Invalid YAML.*line \d+"):
            load_config(path)

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "bridgeline.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_unknown_setting_message(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path / "bridgeline.yaml", _minimal_raw(digest={"bogus": 1}))
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert "digest → bogus: Unknown setting" in str(exc_info.value)

    def test_env_file_loaded(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BRIDGELINE_TEST_TOKEN", raising=False)
        (tmp_path / ".env").write_text("BRIDGELINE_TEST_TOKEN=sekrit\n")
        path = _write_yaml(tmp_path / "bridgeline.yaml", _minimal_raw())
        load_config(path)
        assert os.environ["BRIDGELINE_TEST_TOKEN"] == "sekrit"
        monkeypatch.delenv("BRIDGELINE_TEST_TOKEN")


class TestWithOverrides:
    def test_deep_merge(self) -> None:
        config = BridgeConfig.model_validate(_minimal_raw(digest={"top": 3}))
        merged = with_overrides(config, {"digest": {"interval": 10}})
        assert merged.digest.interval == 10
        assert merged.digest.top == 3
        assert merged.agent.command == "claude -p"

    def test_none_values_ignored(self) -> None:
        config = BridgeConfig.model_validate(_minimal_raw(digest={"top": 3}))
        merged = with_overrides(config, {"digest": {"top": None}, "agent": {"init": None}})
        assert merged.digest.top == 3
        assert merged.agent.init is None

    def test_invalid_override_raises_config_error(self) -> None:
        with pytest.raises(ConfigError, match="webhook → port"):
            with_overrides(BridgeConfig(), {"webhook": {"port": 0}})

    def test_original_unchanged(self) -> None:
        config = BridgeConfig()
        with_overrides(config, {"record": False})
        assert config.record is True
