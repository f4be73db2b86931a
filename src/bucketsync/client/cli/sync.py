"""Sync commands for the bucketsync CLI.

Commands:
- run: Synchronize continuously until interrupted
- sync: Run one synchronization pass
- status: Show the state of every tracked file
"""

from __future__ import annotations

import sys

import click

from bucketsync.client.cli.config import load_sync_config, setup_logging
from bucketsync.client.remote import AuthenticationError, RemoteError
from bucketsync.client.state import StateStore, StoreError
from bucketsync.client.sync import SyncEngine
from bucketsync.client.sync.machine import ATTENTION_STATES
from bucketsync.core.config import ConfigError, SyncConfig


def _load_config_or_exit() -> SyncConfig:
    try:
        return load_sync_config()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _startup_error(error: Exception) -> None:
    if isinstance(error, AuthenticationError):
        click.echo(f"Error: remote rejected the credentials: {error}", err=True)
    elif isinstance(error, StoreError):
        click.echo(f"Error: state store unavailable: {error}", err=True)
    else:
        click.echo(f"Error: remote unavailable: {error}", err=True)
    sys.exit(1)


@click.command()
@click.option("--no-watch", is_flag=True, help="Do not watch the sync folder for changes.")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Number of worker threads.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages.")
def run(no_watch: bool, workers: int | None, verbose: bool) -> None:
    """Synchronize continuously until interrupted.

    Local changes are picked up by the folder watcher; remote changes by
    periodic reconciliation passes.
    """
    config = _load_config_or_exit()
    if workers is not None:
        config.workers = workers
    setup_logging(config.log_path, verbose)

    engine = SyncEngine(config)
    try:
        engine.start(watch=not no_watch)
    except (RemoteError, StoreError) as e:
        engine.stop()
        _startup_error(e)

    click.echo(f"Syncing {config.sync_dir} (Ctrl+C to stop)")
    try:
        while not engine.wait(1.0):
            pass
    except KeyboardInterrupt:
        click.echo("Stopping...")
    finally:
        engine.stop()

    if engine.fatal_error is not None:
        click.echo(f"Error: {engine.fatal_error}", err=True)
        sys.exit(1)


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages.")
def sync(verbose: bool) -> None:
    """Run one synchronization pass and exit.

    Exits with status 1 when files are left failed or in conflict.
    """
    config = _load_config_or_exit()
    setup_logging(config.log_path, verbose)

    engine = SyncEngine(config)
    try:
        counts = engine.sync_once()
    except (RemoteError, StoreError) as e:
        _startup_error(e)
    finally:
        engine.stop()

    for state, count in sorted(counts.items(), key=lambda item: item[0].value):
        click.echo(f"{state.name}: {count}")

    attention = sum(count for state, count in counts.items() if state in ATTENTION_STATES)
    if attention:
        click.echo(f"{attention} file(s) need attention (run 'bucketsync status').", err=True)
        sys.exit(1)
    click.echo("Sync complete.")


@click.command()
def status() -> None:
    """Show the synchronization state of every tracked file."""
    config = _load_config_or_exit()

    if not config.state_db_path.exists():
        click.echo("No files tracked yet.")
        return

    try:
        store = StateStore(config.state_db_path)
    except StoreError as e:
        _startup_error(e)

    try:
        records = store.list_all()
    finally:
        store.close()

    if not records:
        click.echo("No files tracked yet.")
        return

    for record in records:
        size = record.local_data.size if record.local_data else record.cloud_data.size  # type: ignore[union-attr]
        marker = " !" if record.state in ATTENTION_STATES else ""
        click.echo(f"{record.state.name:<17} {size:>10}  {record.name}{marker}")
    click.echo(f"{len(records)} file(s) tracked")
