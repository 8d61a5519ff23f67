"""Smoke tests for the bridgeline CLI."""

import shlex
import sys
import textwrap
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from bridgeline import __version__
from bridgeline.cli import cli

FAKE_AGENT = textwrap.dedent(
    """\
    import json
    import sys

    for line in sys.stdin:
        msg = json.loads(line)
        text = msg["message"]["content"][0]["text"]
        out = [
            {"type": "system", "subtype": "init", "model": "fake-1"},
            {"type": "assistant", "message": {"content": [{"type": "text", "text": "echo: " + text}]}},
            {"type": "result", "subtype": "success"},
        ]
        for event in out:
            sys.stdout.write(json.dumps(event) + "\\n")
        sys.stdout.flush()
    """
)


def _fake_agent(tmp_path: Path) -> str:
    script = tmp_path / "fake_agent.py"
    script.write_text(FAKE_AGENT)
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Bridgeline" in result.output
    for name in ("chat", "tail", "digest", "metrics", "webhook", "uptime", "init"):
        assert name in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"bridgeline, version {__version__}" in result.output


def test_bridge_flags() -> None:
    result = CliRunner().invoke(cli, ["digest", "--help"])
    assert result.exit_code == 0
    for flag in ("--interval", "--max-chars", "--top", "--agent-command", "--no-record"):
        assert flag in result.output


def test_bad_config_exits_1() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("bridgeline.yaml").write_text("digest:\n  bogus: 1\n")
        result = runner.invoke(cli, ["tail", "app.log"])
        assert result.exit_code == 1
        assert "Error" in result.output
        assert "Unknown setting" in result.output


def test_missing_explicit_config_exits_1() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["chat", "-f", "nope.yaml", "hi"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


def test_chat_empty_message_is_usage_error() -> None:
    result = CliRunner().invoke(cli, ["chat"], input="   ")
    assert result.exit_code == 2
    assert "Message is empty" in result.output


def test_uptime_requires_urls() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["uptime"])
        assert result.exit_code == 2
        assert "No URLs" in result.output


def test_uptime_enables_http_get() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(), patch("bridgeline.commands.uptime.run_bridge") as run:
        result = runner.invoke(cli, ["uptime", "https://x.test", "--interval", "5"])
        assert result.exit_code == 0
    config = run.call_args.args[0]
    assert config.uptime.urls == ["https://x.test"]
    assert config.uptime.interval == 5
    assert "http_get" in config.tools.enabled


def test_digest_overrides_reach_config() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem(), patch("bridgeline.commands.digest.run_bridge") as run:
        result = runner.invoke(
            cli, ["digest", "a.log", "--interval", "30", "--top", "3", "--no-record"]
        )
        assert result.exit_code == 0
    config, bridge = run.call_args.args[:2]
    assert bridge == "digest"
    assert config.digest.interval == 30
    assert config.digest.top == 3
    assert config.record is False


def test_chat_round_trip_with_fake_agent(tmp_path: Path) -> None:
    runner = CliRunner()
    command = _fake_agent(tmp_path)
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(
            cli,
            ["chat", "--agent-command", command, "--timeout", "20", "hello there"],
        )
        assert result.exit_code == 0, result.output
        assert "echo: hello there" in result.output
        assert list(Path("sessions").glob("*_chat_*.jsonl"))
