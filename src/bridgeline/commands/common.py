"""Wiring shared by every bridge command: config, recorder, session, signals."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click

from bridgeline.background_loop import BackgroundLoop
from bridgeline.config.models import BridgeConfig
from bridgeline.config.parser import ConfigError, load_config, with_overrides
from bridgeline.errors import BridgeError, ChildProcessExit
from bridgeline.helpers import record_error
from bridgeline.session.multiplexer import AgentSession
from bridgeline.session.recorder import EndReason, NullRecorder, SessionRecorder
from bridgeline.shutdown import ShutdownManager
from bridgeline.tools.adapter import ToolAdapter
from bridgeline.tools.http import handle_http_get

logger = logging.getLogger(__name__)

#: Built-in tool name -> handler.
BUILTIN_TOOLS = {"http_get": handle_http_get}

# Options every bridge command accepts.
config_option = click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
command_option = click.option(
    "--agent-command", "agent_command", default=None, help="Override the agent command line."
)
init_option = click.option(
    "--init", "init_prompt", default=None, help="Initial instruction sent to the agent."
)
no_record_option = click.option(
    "--no-record", is_flag=True, help="Do not write a session log."
)
verbose_option = click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")


def bridge_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Apply the shared options to a bridge command."""
    for option in (verbose_option, no_record_option, init_option, command_option, config_option):
        fn = option(fn)
    return fn


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_bridge_config(
    config_file: str | None,
    agent_command: str | None = None,
    init_prompt: str | None = None,
    no_record: bool = False,
    overrides: dict[str, Any] | None = None,
) -> BridgeConfig:
    """Load config and apply CLI flags; exits with status 1 on ``ConfigError``."""
    merged: dict[str, Any] = dict(overrides or {})
    agent = dict(merged.pop("agent", None) or {})
    agent.setdefault("command", agent_command)
    agent.setdefault("init", init_prompt)
    merged["agent"] = agent
    if no_record:
        merged["record"] = False

    try:
        config = load_config(Path(config_file) if config_file else None)
        return with_overrides(config, merged)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc


@dataclass
class BridgeContext:
    """What a bridge body gets to work with."""

    config: BridgeConfig
    session: AgentSession
    recorder: SessionRecorder
    shutdown_event: asyncio.Event
    loops: list[BackgroundLoop] = field(default_factory=list)
    stoppers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
    tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run *coro* for the life of the bridge; cancelled at shutdown."""
        task = asyncio.create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self.tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, ChildProcessExit):
            logger.error("Bridge task failed: %s", exc, exc_info=exc)

    async def cancel_tasks(self) -> None:
        pending = list(self.tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


BridgeBody = Callable[[BridgeContext], Awaitable["EndReason | None"]]


def build_tools(config: BridgeConfig) -> ToolAdapter:
    tools = ToolAdapter(timeout=config.tools.timeout, preview_chars=config.tools.preview_chars)
    for name in config.tools.enabled:
        tools.register_handler(name, BUILTIN_TOOLS[name])
    return tools


def build_recorder(config: BridgeConfig, bridge: str) -> SessionRecorder:
    if not config.record:
        return NullRecorder(bridge, config.agent.command)
    return SessionRecorder(bridge, config.agent.command, Path(config.sessions_dir))


async def _echo_assistant(text: str) -> None:
    if text.strip():
        click.echo(f"Assistant: {text}")


def run_bridge(
    config: BridgeConfig,
    bridge: str,
    body: BridgeBody,
    echo_text: bool = True,
    tools: ToolAdapter | None = None,
    default_init: str | None = None,
) -> None:
    """Run *body* against a live agent session; exit status 1 on failure.

    *default_init* is sent as the first turn when the config sets no
    ``agent.init``.
    """
    reason = asyncio.run(_run(config, bridge, body, echo_text, tools, default_init))
    if reason in ("agent_exit", "error"):
        raise SystemExit(1)


async def _run(
    config: BridgeConfig,
    bridge: str,
    body: BridgeBody,
    echo_text: bool,
    tools: ToolAdapter | None,
    default_init: str | None,
) -> EndReason:
    recorder = build_recorder(config, bridge)
    session = AgentSession(
        command=config.agent.command,
        tool_adapter=tools or build_tools(config),
        recorder=recorder,
        on_text=_echo_assistant if echo_text else None,
        turn_timeout=config.agent.turn_timeout,
        write_queue_size=config.agent.write_queue_size,
        cwd=config.agent.cwd,
    )
    shutdown_event = asyncio.Event()
    _install_handlers(shutdown_event)

    try:
        await session.start(config.agent.init or default_init)
    except ChildProcessExit:
        recorder.end("error")
        return "error"

    ctx = BridgeContext(
        config=config,
        session=session,
        recorder=recorder,
        shutdown_event=shutdown_event,
    )
    ctx.stoppers.append(ctx.cancel_tasks)
    manager = ShutdownManager(
        session=session,
        recorder=recorder,
        shutdown_event=shutdown_event,
        loops=ctx.loops,
        stoppers=ctx.stoppers,
    )

    reason: EndReason = "user_shutdown"
    try:
        finished = await body(ctx)
        if finished is not None:
            reason = finished
        else:
            reason = await _wait_for_end(session, shutdown_event)
    except ChildProcessExit as exc:
        click.echo(f"Error: {exc}", err=True)
        reason = "agent_exit"
    except BridgeError as exc:
        record_error(recorder, str(exc), context=bridge, logger=logger)
        click.echo(f"Error: {exc}", err=True)
        reason = "error"
    finally:
        await manager.execute(reason)
    return reason


async def _wait_for_end(session: AgentSession, shutdown_event: asyncio.Event) -> EndReason:
    """Block until Ctrl+C / SIGTERM or the agent exits on its own."""
    stop = asyncio.create_task(shutdown_event.wait())
    exited = asyncio.create_task(session.closed.wait())
    try:
        await asyncio.wait({stop, exited}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (stop, exited):
            task.cancel()
    if shutdown_event.is_set():
        return "user_shutdown"
    click.echo(f"Error: {session.exit_error or 'agent exited'}", err=True)
    return "agent_exit"


def _install_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _async_exception_handler(
        loop: asyncio.AbstractEventLoop,
        context: dict[str, object],
    ) -> None:
        msg = context.get("message", "Unhandled async exception")
        exc = context.get("exception")
        click.echo(click.style(f"  ⚠ async error: {msg}", fg="red"), err=True)
        if exc:
            click.echo(f"    {type(exc).__name__}: {exc}", err=True)

    loop.set_exception_handler(_async_exception_handler)

    def _signal_shutdown(sig_name: str) -> None:
        if not shutdown_event.is_set():
            click.echo(f"\nReceived {sig_name}, shutting down...", err=True)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops).
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _signal_shutdown, sig.name)
