"""Tests for `bridgeline init` command."""

from __future__ import annotations

from pathlib import Path

import yaml
from click.testing import CliRunner

from bridgeline.cli import cli
from bridgeline.commands.init import TEMPLATE_YAML
from bridgeline.config.models import BridgeConfig
from bridgeline.config.parser import DEFAULT_CONFIG_NAME, load_config


class TestInitCreatesFiles:
    """bridgeline init writes a starter config."""

    def test_creates_config(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert Path(DEFAULT_CONFIG_NAME).is_file()
            assert f"Created {DEFAULT_CONFIG_NAME}" in result.output
            assert "Next steps" in result.output

    def test_refuses_to_overwrite(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(DEFAULT_CONFIG_NAME).write_text("record: false\n")
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 1
            assert "already exists" in result.output
            assert Path(DEFAULT_CONFIG_NAME).read_text() == "record: false\n"

    def test_force_overwrites(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(DEFAULT_CONFIG_NAME).write_text("record: false\n")
            result = runner.invoke(cli, ["init", "--force"])
            assert result.exit_code == 0
            assert Path(DEFAULT_CONFIG_NAME).read_text() == TEMPLATE_YAML


class TestTemplateIsValid:
    """The generated template must load cleanly."""

    def test_template_validates(self) -> None:
        raw = yaml.safe_load(TEMPLATE_YAML)
        config = BridgeConfig.model_validate(raw)
        assert config.version == "1"
        assert config.webhook.path.startswith("/")

    def test_written_file_loads(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            runner.invoke(cli, ["init"])
            config = load_config(Path(DEFAULT_CONFIG_NAME))
            assert config.digest.interval == 300
