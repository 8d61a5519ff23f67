"""bridgeline uptime — probe URLs and report state changes to the agent."""

from __future__ import annotations

import click

from bridgeline.commands.common import (
    BridgeContext,
    bridge_options,
    configure_logging,
    load_bridge_config,
    run_bridge,
)
from bridgeline.config.parser import with_overrides
from bridgeline.sources.uptime import UptimeMonitor


@click.command()
@click.argument("urls", nargs=-1)
@click.option("--interval", type=float, default=None, help="Seconds between probes.")
@bridge_options
def uptime(
    urls: tuple[str, ...],
    interval: float | None,
    config_file: str | None,
    agent_command: str | None,
    init_prompt: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Probe URLS on an interval; the agent also gets an http_get tool."""
    configure_logging(verbose)
    overrides = {"uptime": {"interval": interval, "urls": list(urls) or None}}
    config = load_bridge_config(
        config_file, agent_command, init_prompt, no_record, overrides=overrides
    )
    if not config.uptime.urls:
        raise click.UsageError("No URLs to monitor (pass them as arguments or set uptime.urls).")

    enabled = sorted({*config.tools.enabled, "http_get"})
    config = with_overrides(config, {"tools": {"enabled": enabled}})

    async def body(ctx: BridgeContext) -> None:
        settings = ctx.config.uptime
        monitor = UptimeMonitor(
            settings.urls,
            ctx.session.push,
            ctx.shutdown_event,
            interval=settings.interval,
            timeout=settings.timeout,
        )
        listing = "\n".join(f" - {u}" for u in settings.urls)
        click.echo(f"Monitoring ({settings.interval:g}s):\n{listing}", err=True)
        await monitor.start()
        ctx.loops.append(monitor)

    run_bridge(
        config,
        "uptime",
        body,
        default_init="Track availability; notify on state changes only.",
    )
