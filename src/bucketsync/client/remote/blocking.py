"""Blocking facade over the callback-based remote store.

Each request creates a one-shot Future; the store's callbacks complete it
and the calling task waits on it with an explicit timeout. A timeout is a
transient failure: the remote may still finish the operation, which is why
tasks re-probe the remote side before acting again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any

from bucketsync.client.remote.base import (
    Bucket,
    ErrorCallback,
    FileInfo,
    ProgressCallback,
    RemoteError,
    RemoteStore,
    TransientRemoteError,
)

logger = logging.getLogger(__name__)


class RemoteClient:
    """Synchronous access to a RemoteStore.

    Usage:
        client = RemoteClient(LocalDirRemoteStore(root), timeout=30.0)
        files = client.list_files(bucket)
    """

    def __init__(self, store: RemoteStore, timeout: float = 300.0) -> None:
        """Initialize the client.

        Args:
            store: Callback-based remote store.
            timeout: Seconds to wait for each callback.
        """
        self._store = store
        self._timeout = timeout

    @property
    def store(self) -> RemoteStore:
        """Get the underlying remote store."""
        return self._store

    def _call(
        self,
        description: str,
        start: Callable[[Callable[[Any], None], ErrorCallback], None],
    ) -> Any:
        """Start an async operation and block until its callback fires.

        Raises:
            RemoteError: As reported by the store, or TransientRemoteError
                on timeout.
        """
        future: Future[Any] = Future()

        def on_success(result: Any = None) -> None:
            if not future.done():
                future.set_result(result)

        def on_error(error: RemoteError) -> None:
            if not future.done():
                future.set_exception(error)

        start(on_success, on_error)

        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError:
            future.cancel()
            raise TransientRemoteError(
                f"{description} timed out after {self._timeout:.0f}s"
            ) from None

    def get_buckets(self) -> list[Bucket]:
        """List remote buckets."""
        return self._call(
            "Listing buckets",
            lambda ok, err: self._store.get_buckets(ok, err),
        )

    def create_bucket(self, name: str) -> Bucket:
        """Create a remote bucket."""
        return self._call(
            f"Creating bucket {name}",
            lambda ok, err: self._store.create_bucket(name, ok, err),
        )

    def list_files(self, bucket: Bucket) -> list[FileInfo]:
        """List the files of a bucket."""
        return self._call(
            f"Listing files of {bucket.name}",
            lambda ok, err: self._store.list_files(bucket, ok, err),
        )

    def find_file(self, bucket: Bucket, name: str) -> FileInfo | None:
        """Find a remote file by name, or None if it does not exist."""
        for info in self.list_files(bucket):
            if info.name == name:
                return info
        return None

    def upload_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> FileInfo:
        """Upload a local file and return the stored file's metadata."""
        return self._call(
            f"Uploading {name}",
            lambda ok, err: self._store.upload_file(
                bucket, name, local_path, ok, err, on_progress
            ),
        )

    def download_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Download a remote file to a local path."""
        self._call(
            f"Downloading {name}",
            lambda ok, err: self._store.download_file(
                bucket, name, local_path, ok, err, on_progress
            ),
        )

    def delete_file(self, bucket: Bucket, file_info: FileInfo) -> None:
        """Delete a remote file."""
        self._call(
            f"Deleting {file_info.name}",
            lambda ok, err: self._store.delete_file(bucket, file_info, ok, err),
        )

    def close(self) -> None:
        """Close the underlying store."""
        self._store.close()
