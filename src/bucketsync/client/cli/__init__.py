"""Command-line interface for bucketsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Write the agent configuration
- run: Synchronize continuously until interrupted
- sync: Run one synchronization pass
- status: Show the state of every tracked file
"""

from __future__ import annotations

import click

from bucketsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    load_sync_config,
    save_config,
    setup_logging,
)
from bucketsync.client.cli.init import init
from bucketsync.client.cli.sync import run, status, sync


@click.group()
@click.version_option(package_name="bucketsync")
def cli() -> None:
    """bucketsync - keep a local folder in sync with a storage bucket."""


cli.add_command(init)
cli.add_command(run)
cli.add_command(sync)
cli.add_command(status)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "load_sync_config",
    "save_config",
    "setup_logging",
]
