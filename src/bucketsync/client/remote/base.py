"""Remote object store interface.

This module provides:
- FileInfo, Bucket: Remote listing entries
- RemoteError and its transient/permanent/authentication variants
- RemoteStore: Callback-based protocol consumed by the sync engine
- CallbackRemoteStore: Base class running blocking adapter calls on a
  thread pool and reporting results through callbacks
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorCallback = Callable[["RemoteError"], None]
ProgressCallback = Callable[[int, int], None]


class RemoteError(Exception):
    """Base exception for remote store failures."""

    transient = False


class TransientRemoteError(RemoteError):
    """Network or timeout failure; the operation may succeed later."""

    transient = True


class PermanentRemoteError(RemoteError):
    """Failure that will not go away by itself (quota, not found, ...)."""


class AuthenticationError(PermanentRemoteError):
    """Missing or invalid credentials. Never retried silently."""


@dataclass(frozen=True)
class Bucket:
    """A remote bucket."""

    bucket_id: str
    name: str


@dataclass(frozen=True)
class FileInfo:
    """A file stored in a remote bucket.

    Attributes:
        file_id: Identifier assigned by the remote store.
        name: File name (unique within the bucket).
        size: Size in bytes.
        hash: Content hash or version marker.
        created: Upload time (seconds since epoch), if known.
    """

    file_id: str
    name: str
    size: int
    hash: str
    created: float | None = None


class RemoteStore(Protocol):
    """Asynchronous, callback-based remote store.

    Every operation returns immediately; exactly one of ``on_success`` or
    ``on_error`` is called later, possibly from another thread.
    """

    def get_buckets(
        self,
        on_success: Callable[[list[Bucket]], None],
        on_error: ErrorCallback,
    ) -> None: ...

    def create_bucket(
        self,
        name: str,
        on_success: Callable[[Bucket], None],
        on_error: ErrorCallback,
    ) -> None: ...

    def list_files(
        self,
        bucket: Bucket,
        on_success: Callable[[list[FileInfo]], None],
        on_error: ErrorCallback,
    ) -> None: ...

    def upload_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_success: Callable[[FileInfo], None],
        on_error: ErrorCallback,
        on_progress: ProgressCallback | None = None,
    ) -> None: ...

    def download_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_success: Callable[[], None],
        on_error: ErrorCallback,
        on_progress: ProgressCallback | None = None,
    ) -> None: ...

    def delete_file(
        self,
        bucket: Bucket,
        file_info: FileInfo,
        on_success: Callable[[], None],
        on_error: ErrorCallback,
    ) -> None: ...

    def close(self) -> None: ...


class CallbackRemoteStore(ABC):
    """Adapts a blocking store implementation to the callback protocol.

    Subclasses implement the ``_do_*`` methods as plain blocking calls that
    raise RemoteError subclasses; this class runs them on a private thread
    pool and dispatches the outcome to the caller's callbacks.
    """

    def __init__(self, max_workers: int = 4) -> None:
        """Initialize the dispatch pool.

        Args:
            max_workers: Maximum concurrent remote operations.
        """
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=type(self).__name__,
        )
        self._lock = threading.Lock()
        self._closed = False

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of the remote."""

    # === Blocking implementation ===

    @abstractmethod
    def _do_get_buckets(self) -> list[Bucket]: ...

    @abstractmethod
    def _do_create_bucket(self, name: str) -> Bucket: ...

    @abstractmethod
    def _do_list_files(self, bucket: Bucket) -> list[FileInfo]: ...

    @abstractmethod
    def _do_upload_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None,
    ) -> FileInfo: ...

    @abstractmethod
    def _do_download_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None,
    ) -> None: ...

    @abstractmethod
    def _do_delete_file(self, bucket: Bucket, file_info: FileInfo) -> None: ...

    # === Callback protocol ===

    def get_buckets(
        self,
        on_success: Callable[[list[Bucket]], None],
        on_error: ErrorCallback,
    ) -> None:
        """List buckets."""
        self._dispatch(self._do_get_buckets, on_success, on_error)

    def create_bucket(
        self,
        name: str,
        on_success: Callable[[Bucket], None],
        on_error: ErrorCallback,
    ) -> None:
        """Create a bucket."""
        self._dispatch(lambda: self._do_create_bucket(name), on_success, on_error)

    def list_files(
        self,
        bucket: Bucket,
        on_success: Callable[[list[FileInfo]], None],
        on_error: ErrorCallback,
    ) -> None:
        """List the files of a bucket."""
        self._dispatch(lambda: self._do_list_files(bucket), on_success, on_error)

    def upload_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_success: Callable[[FileInfo], None],
        on_error: ErrorCallback,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Upload a local file under the given name."""
        self._dispatch(
            lambda: self._do_upload_file(bucket, name, local_path, on_progress),
            on_success,
            on_error,
        )

    def download_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_success: Callable[[], None],
        on_error: ErrorCallback,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Download a file to the given local path."""
        self._dispatch(
            lambda: self._do_download_file(bucket, name, local_path, on_progress),
            lambda _: on_success(),
            on_error,
        )

    def delete_file(
        self,
        bucket: Bucket,
        file_info: FileInfo,
        on_success: Callable[[], None],
        on_error: ErrorCallback,
    ) -> None:
        """Delete a remote file."""
        self._dispatch(
            lambda: self._do_delete_file(bucket, file_info),
            lambda _: on_success(),
            on_error,
        )

    def close(self) -> None:
        """Stop accepting operations.

        Queued operations are cancelled; running ones finish in the
        background and their callbacks still fire.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _dispatch(
        self,
        func: Callable[[], T],
        on_success: Callable[[T], Any],
        on_error: ErrorCallback,
    ) -> None:
        """Run a blocking call on the pool and report its outcome."""
        with self._lock:
            if not self._closed:
                self._pool.submit(self._run, func, on_success, on_error)
                return
        on_error(PermanentRemoteError("Remote store is closed"))

    def _run(
        self,
        func: Callable[[], T],
        on_success: Callable[[T], Any],
        on_error: ErrorCallback,
    ) -> None:
        try:
            result = func()
        except RemoteError as e:
            self._notify(on_error, e)
            return
        except OSError as e:
            self._notify(on_error, TransientRemoteError(str(e)))
            return
        except Exception as e:
            logger.exception("Unexpected remote store failure")
            self._notify(on_error, PermanentRemoteError(str(e)))
            return
        self._notify(on_success, result)

    @staticmethod
    def _notify(callback: Callable[[Any], Any], value: Any) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Remote callback raised")
