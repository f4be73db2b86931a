"""Init command for the bucketsync CLI.

Commands:
- init: Write the agent configuration
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from bucketsync.client.cli.config import get_config_dir, get_config_file, save_config
from bucketsync.core.config import CONFLICT_POLICIES, REMOTE_TYPES, ConfigError, SyncConfig


@click.command()
@click.option(
    "--sync-dir",
    type=click.Path(file_okay=False, path_type=Path),
    prompt="Sync folder",
    default=lambda: str(Path.home() / "BucketSync"),
    help="Local folder kept in sync with the bucket.",
)
@click.option("--bucket", default="bucketsync", show_default=True, help="Remote bucket name.")
@click.option(
    "--remote-type",
    type=click.Choice(REMOTE_TYPES),
    default="local",
    show_default=True,
    help="Remote store adapter.",
)
@click.option("--remote-path", default=None, help="Root directory of the local remote store.")
@click.option("--endpoint-url", default=None, help="S3 endpoint URL (OVH, MinIO, ...).")
@click.option("--region", default=None, help="S3 region.")
@click.option(
    "--conflict-policy",
    type=click.Choice(CONFLICT_POLICIES),
    default="newest",
    show_default=True,
    help="How conflicting changes are resolved.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing configuration.")
def init(
    sync_dir: Path,
    bucket: str,
    remote_type: str,
    remote_path: str | None,
    endpoint_url: str | None,
    region: str | None,
    conflict_policy: str,
    force: bool,
) -> None:
    """Initialize bucketsync configuration.

    S3 credentials are read from BUCKETSYNC_S3_ACCESS_KEY and
    BUCKETSYNC_S3_SECRET_KEY and never written to the config file.
    """
    if get_config_file().exists() and not force:
        click.echo("Error: bucketsync is already initialized (use --force).", err=True)
        sys.exit(1)

    remote: dict[str, str | None] = {"type": remote_type}
    for key, value in (
        ("path", remote_path),
        ("endpoint_url", endpoint_url),
        ("region", region),
    ):
        if value:
            remote[key] = value

    try:
        config = SyncConfig(
            sync_dir=sync_dir,
            data_dir=get_config_dir(),
            bucket_name=bucket,
            conflict_policy=conflict_policy,
            remote=remote,
        )
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    config.sync_dir.mkdir(parents=True, exist_ok=True)
    save_config(config.to_dict())

    click.echo(f"Sync folder: {config.sync_dir}")
    click.echo(f"Bucket: {config.bucket_name} ({remote_type})")
    click.echo(f"Configuration saved to {get_config_file()}")
