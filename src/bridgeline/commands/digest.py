"""bridgeline digest / metrics — periodic compressed summaries of tailed logs."""

from __future__ import annotations

import logging
from typing import Any

import click

from bridgeline.commands.common import (
    BridgeContext,
    bridge_options,
    configure_logging,
    load_bridge_config,
    run_bridge,
)
from bridgeline.digest.aggregator import DigestAggregator
from bridgeline.sources.tail import TailSource, parse_record

logger = logging.getLogger(__name__)


def digest_options(fn: Any) -> Any:
    """Flags that override the ``digest:`` section of the config."""
    for option in (
        click.option("--samples", type=int, default=None, help="Exemplars kept per pattern."),
        click.option("--top", type=int, default=None, help="Ranked entries per section."),
        click.option("--max-chars", type=int, default=None, help="Character budget per digest."),
        click.option("--interval", type=float, default=None, help="Seconds between digests."),
    ):
        fn = option(fn)
    return fn


def _digest_overrides(
    interval: float | None,
    max_chars: int | None,
    top: int | None,
    samples: int | None,
) -> dict[str, Any]:
    return {
        "digest": {
            "interval": interval,
            "max_chars": max_chars,
            "top": top,
            "samples": samples,
        }
    }


async def feed_lines(source: TailSource, aggregator: DigestAggregator) -> None:
    async for line in source.lines():
        aggregator.ingest_line(line, source=source.path)


async def feed_records(source: TailSource, aggregator: DigestAggregator) -> None:
    async for line in source.lines():
        record = parse_record(line)
        if record is not None:
            aggregator.ingest_record(record, source=source.path)


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(dir_okay=False))
@digest_options
@bridge_options
def digest(
    paths: tuple[str, ...],
    interval: float | None,
    max_chars: int | None,
    top: int | None,
    samples: int | None,
    config_file: str | None,
    agent_command: str | None,
    init_prompt: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Tail one or more text logs and send a pattern digest every interval."""
    configure_logging(verbose)
    config = load_bridge_config(
        config_file,
        agent_command,
        init_prompt,
        no_record,
        overrides=_digest_overrides(interval, max_chars, top, samples),
    )
    files = list(dict.fromkeys(paths))

    async def body(ctx: BridgeContext) -> None:
        aggregator = DigestAggregator(
            ctx.config.digest,
            ctx.session.push,
            ctx.shutdown_event,
            label=f"logs:{files[0]}",
            sources=files,
            recorder=ctx.recorder,
        )
        for path in files:
            source = TailSource(path)
            ctx.stoppers.append(source.stop)
            ctx.spawn(feed_lines(source, aggregator))
        await aggregator.start()
        ctx.loops.append(aggregator)
        click.echo(
            f"Tailing {', '.join(files)}; digest every {ctx.config.digest.interval:g}s",
            err=True,
        )

    if len(files) > 1:
        default_init = (
            "You'll receive compact summaries from multiple logs. "
            "Prioritize cross-file correlations and anomalies."
        )
    else:
        default_init = (
            f"You'll receive compact periodic summaries of {files[0]}. "
            "Focus on anomalies and recurring issues."
        )
    run_bridge(config, "digest", body, default_init=default_init)


@click.command()
@click.argument("path", type=click.Path(dir_okay=False))
@digest_options
@bridge_options
def metrics(
    path: str,
    interval: float | None,
    max_chars: int | None,
    top: int | None,
    samples: int | None,
    config_file: str | None,
    agent_command: str | None,
    init_prompt: str | None,
    no_record: bool,
    verbose: bool,
) -> None:
    """Tail a JSON log and send a latency / error digest every interval."""
    configure_logging(verbose)
    config = load_bridge_config(
        config_file,
        agent_command,
        init_prompt,
        no_record,
        overrides=_digest_overrides(interval, max_chars, top, samples),
    )

    async def body(ctx: BridgeContext) -> None:
        aggregator = DigestAggregator(
            ctx.config.digest,
            ctx.session.push,
            ctx.shutdown_event,
            label=f"metrics:{path}",
            recorder=ctx.recorder,
        )
        source = TailSource(path)
        ctx.stoppers.append(source.stop)
        ctx.spawn(feed_records(source, aggregator))
        await aggregator.start()
        ctx.loops.append(aggregator)
        click.echo(
            f"Tailing {path}; metrics every {ctx.config.digest.interval:g}s", err=True
        )

    run_bridge(
        config,
        "metrics",
        body,
        default_init=(
            f"You'll receive compact periodic metrics from {path}. "
            "Provide brief insights and potential causes."
        ),
    )
