"""Root CLI group and version flag."""

import faulthandler
import signal

import click

from bridgeline import __version__
from bridgeline.commands.chat import chat
from bridgeline.commands.digest import digest, metrics
from bridgeline.commands.init import init
from bridgeline.commands.tail import tail
from bridgeline.commands.uptime import uptime
from bridgeline.commands.webhook import webhook

faulthandler.enable()

# Keep a closed stdout pipe (e.g. `| head`) from killing the bridge mid-shutdown.
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)


@click.group()
@click.version_option(version=__version__, prog_name="bridgeline")
def cli() -> None:
    """Bridgeline — feed live events to a long-running stream-json agent."""


cli.add_command(init)
cli.add_command(chat)
cli.add_command(tail)
cli.add_command(digest)
cli.add_command(metrics)
cli.add_command(webhook)
cli.add_command(uptime)
