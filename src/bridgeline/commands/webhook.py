"""bridgeline webhook — HTTP endpoint whose POST bodies become agent events."""

from __future__ import annotations

import click

from bridgeline.commands.common import (
    BridgeContext,
    bridge_options,
    configure_logging,
    load_bridge_config,
    run_bridge,
)
from bridgeline.sources.webhook import WebhookServer


@click.command()
@click.option("--host", default=None, help="Bind address (default 127.0.0.1).")
@click.option("--port", type=int, default=None, help="Listen port (default 8787).")
@click.option("--path", "hook_path", default=None, help="POST endpoint path (default /hook).")
@bridge_options
def webhook(
    host: str | None,
    port: int | None,
    hook_path: str | None,
    config_file: str | None,
    agent_command: str | None,
    init_prompt: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Accept webhooks and forward each payload to the agent."""
    configure_logging(verbose)
    config = load_bridge_config(
        config_file,
        agent_command,
        init_prompt,
        no_record,
        overrides={"webhook": {"host": host, "port": port, "path": hook_path}},
    )

    async def body(ctx: BridgeContext) -> None:
        hook = ctx.config.webhook
        server = WebhookServer(ctx.session.push, hook.host, hook.port, hook.path)
        ctx.stoppers.append(server.stop)
        try:
            await server.start()
        except OSError as exc:
            raise click.ClickException(
                f"Cannot listen on {hook.host}:{hook.port}: {exc}"
            ) from exc
        click.echo(f"Webhook listening on http://{hook.host}:{hook.port}{hook.path}", err=True)

    run_bridge(
        config,
        "webhook",
        body,
        default_init="Summarize incoming webhook events and flag anomalies.",
    )
