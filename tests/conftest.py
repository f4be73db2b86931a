"""Shared fixtures.

The directory-backed remote store stands in for the real remote in every
test that needs one.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from bucketsync.client.remote import Bucket, LocalDirRemoteStore, RemoteClient
from bucketsync.client.state import StateStore
from bucketsync.client.sync.context import SyncContext
from bucketsync.client.sync.queue import TaskQueue
from bucketsync.core.config import SyncConfig


def _write_file(path: Path, content: bytes | str, mtime: float | None = None) -> Path:
    """Write a file, optionally forcing its modification time."""
    if isinstance(content, str):
        content = content.encode()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def write_file():
    """Write a file, optionally forcing its modification time."""
    return _write_file


@pytest.fixture
def sync_dir(tmp_path: Path) -> Path:
    """Create the local sync folder."""
    path = tmp_path / "sync"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path: Path, sync_dir: Path) -> SyncConfig:
    """Agent settings with fast retries and no periodic passes."""
    return SyncConfig(
        sync_dir=sync_dir,
        data_dir=tmp_path / "data",
        bucket_name="test-bucket",
        remote_timeout=10.0,
        probe_retries=1,
        startup_retries=1,
        retry_backoff=0.0,
        reconcile_interval=0,
        shutdown_timeout=5.0,
        debounce_ms=50,
        remote={"type": "local", "path": str(tmp_path / "remote")},
    )


@pytest.fixture
def store(tmp_path: Path) -> Iterator[StateStore]:
    """Open a state store in a temporary directory."""
    state = StateStore(tmp_path / "state.db")
    yield state
    state.close()


@pytest.fixture
def remote_store(tmp_path: Path) -> Iterator[LocalDirRemoteStore]:
    """Create a directory-backed remote store."""
    remote = LocalDirRemoteStore(tmp_path / "remote")
    yield remote
    remote.close()


@pytest.fixture
def remote(remote_store: LocalDirRemoteStore) -> RemoteClient:
    """Blocking client over the remote store."""
    return RemoteClient(remote_store, timeout=10.0)


@pytest.fixture
def bucket(remote: RemoteClient) -> Bucket:
    """Create the synchronized bucket."""
    return remote.create_bucket("test-bucket")


@pytest.fixture
def ctx(
    config: SyncConfig,
    store: StateStore,
    remote: RemoteClient,
    bucket: Bucket,
) -> SyncContext:
    """Engine context wired to the temporary store and remote."""
    return SyncContext.create(config, store, remote, bucket, TaskQueue())


@pytest.fixture
def upload_remote(tmp_path: Path, remote: RemoteClient, bucket: Bucket):
    """Put a file in the remote bucket without touching the sync folder."""
    staging = tmp_path / "staging"

    def _upload(name: str, content: bytes | str):
        source = _write_file(staging / name, content)
        return remote.upload_file(bucket, name, source)

    return _upload
