"""Remote object store adapters.

This package provides:
- RemoteStore: Callback-based interface consumed by the sync engine
- LocalDirRemoteStore: Directory-backed store (development, tests)
- S3RemoteStore: S3-compatible store
- RemoteClient: Blocking facade with per-call timeouts
- create_remote_store: Build a store from the ``remote`` config section
"""

from __future__ import annotations

from pathlib import Path

from bucketsync.client.remote.base import (
    AuthenticationError,
    Bucket,
    CallbackRemoteStore,
    FileInfo,
    PermanentRemoteError,
    RemoteError,
    RemoteStore,
    TransientRemoteError,
)
from bucketsync.client.remote.blocking import RemoteClient
from bucketsync.client.remote.local import LocalDirRemoteStore
from bucketsync.client.remote.s3 import S3RemoteStore
from bucketsync.core.config import ConfigError


def create_remote_store(
    remote: dict[str, str | None],
    default_root: Path,
) -> CallbackRemoteStore:
    """Create a remote store from its settings.

    Args:
        remote: Remote settings (``type`` plus adapter options).
        default_root: Root used by the local adapter when no ``path`` is set.

    Returns:
        Configured remote store.

    Raises:
        ConfigError: If the remote type is unknown.
    """
    remote_type = remote.get("type") or "local"

    if remote_type == "local":
        return LocalDirRemoteStore(remote.get("path") or default_root)

    if remote_type == "s3":
        return S3RemoteStore(
            endpoint_url=remote.get("endpoint_url"),
            access_key=remote.get("access_key"),
            secret_key=remote.get("secret_key"),
            region=remote.get("region") or "us-east-1",
        )

    raise ConfigError(f"Unknown remote type: {remote_type}")


__all__ = [
    "AuthenticationError",
    "Bucket",
    "CallbackRemoteStore",
    "FileInfo",
    "LocalDirRemoteStore",
    "PermanentRemoteError",
    "RemoteClient",
    "RemoteError",
    "RemoteStore",
    "S3RemoteStore",
    "TransientRemoteError",
    "create_remote_store",
]
