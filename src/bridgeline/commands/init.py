"""bridgeline init — scaffold a bridgeline.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

from bridgeline.config.parser import DEFAULT_CONFIG_NAME

TEMPLATE_YAML = """\
# bridgeline configuration
version: "1"

agent:
  # Any process speaking stream-json on stdin/stdout works here.
  command: claude -p --output-format=stream-json --input-format=stream-json --verbose
  # First instruction sent after start-up (each bridge has its own default)
  # init: Summarize incoming events and flag anomalies.
  # Seconds a blocking turn (bridgeline chat) may wait; omit to wait forever
  # turn_timeout: 120

digest:
  interval: 300      # seconds between digests
  max_chars: 3500    # character budget per digest
  top: 8             # ranked entries per section
  samples: 2         # exemplar lines kept per pattern
  # severity:
  #   error: [error, fatal, panic]
  #   warn: [warn, warning]

tools:
  timeout: 10
  # Built-in tools the agent may call (uptime always enables http_get)
  enabled: []

webhook:
  host: 127.0.0.1
  port: 8787
  path: /hook

uptime:
  interval: 15
  urls: []
  #  - https://example.com

# Session logs (JSONL) are written here unless --no-record is given
record: true
sessions_dir: sessions
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help=f"Overwrite existing {DEFAULT_CONFIG_NAME} if it exists.",
)
def init(force: bool) -> None:
    """Write a starter bridgeline.yaml in the current directory."""
    config_path = Path.cwd() / DEFAULT_CONFIG_NAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{DEFAULT_CONFIG_NAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {DEFAULT_CONFIG_NAME}: {exc}") from exc
    click.echo(f"  Created {DEFAULT_CONFIG_NAME}")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {DEFAULT_CONFIG_NAME} to point at your logs or URLs")
    click.echo("  2. Run `bridgeline digest app.log` (or webhook, uptime, ...)")
