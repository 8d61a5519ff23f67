"""bridgeline chat — one blocking turn, reply printed to stdout."""

from __future__ import annotations

import asyncio
import sys

import click

from bridgeline.commands.common import (
    BridgeContext,
    bridge_options,
    configure_logging,
    load_bridge_config,
    run_bridge,
)
from bridgeline.session.recorder import EndReason


@click.command()
@click.argument("message", required=False)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds to wait for the reply (default: agent.turn_timeout).",
)
@bridge_options
def chat(
    message: str | None,
    timeout: float | None,
    config_file: str | None,
    agent_command: str | None,
    init_prompt: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Send MESSAGE (or stdin) to the agent and print its reply."""
    configure_logging(verbose)
    if message is None:
        if sys.stdin.isatty():
            raise click.UsageError("Give a MESSAGE argument or pipe one on stdin.")
        message = sys.stdin.read()
    if not message.strip():
        raise click.UsageError("Message is empty.")

    config = load_bridge_config(config_file, agent_command, init_prompt, no_record)
    text = message

    async def body(ctx: BridgeContext) -> EndReason:
        turn = asyncio.create_task(ctx.session.send_and_await(text, timeout=timeout))
        stop = asyncio.create_task(ctx.shutdown_event.wait())
        await asyncio.wait({turn, stop}, return_when=asyncio.FIRST_COMPLETED)
        stop.cancel()
        if not turn.done():
            turn.cancel()
            return "user_shutdown"
        click.echo(turn.result())
        return "complete"

    run_bridge(config, "chat", body, echo_text=False)
