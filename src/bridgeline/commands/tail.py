"""bridgeline tail — forward each new line of a log file to the agent."""

from __future__ import annotations

import logging

import click

from bridgeline.commands.common import (
    BridgeContext,
    bridge_options,
    configure_logging,
    load_bridge_config,
    run_bridge,
)
from bridgeline.sources.tail import TailSource, format_log_line, matches

logger = logging.getLogger(__name__)


async def forward_lines(ctx: BridgeContext, source: TailSource, grep: str | None) -> None:
    """Push every (matching) line as its own event."""
    forwarded = 0
    async for line in source.lines():
        if not matches(line, grep):
            continue
        await ctx.session.push(format_log_line(source.path, line))
        forwarded += 1
    logger.info("tail of %s ended after %d line(s)", source.path, forwarded)


@click.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--grep", default=None, help="Only forward lines containing this text.")
@bridge_options
def tail(
    path: str,
    grep: str | None,
    config_file: str | None,
    agent_command: str | None,
    init_prompt: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Forward lines appended to PATH, one event per line."""
    configure_logging(verbose)
    config = load_bridge_config(config_file, agent_command, init_prompt, no_record)

    async def body(ctx: BridgeContext) -> None:
        source = TailSource(path)
        ctx.stoppers.append(source.stop)
        ctx.spawn(forward_lines(ctx, source, grep))
        click.echo(f"Tailing {path}" + (f" (grep {grep!r})" if grep else ""), err=True)

    run_bridge(
        config,
        "tail",
        body,
        default_init=f"You're receiving log lines from {path}. Summarize bursts of errors.",
    )
