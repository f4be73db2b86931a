"""Sync engine.

This module provides:
- SyncEngine: Builds the engine context at startup and owns the lifecycle
  of the executor, the watcher and the reconciliation scheduler
- ensure_bucket: Find or create the synchronized bucket

Startup sequence:
1. Create the sync folder and the data folder
2. Find the bucket, creating it when missing (transient errors are retried
   with backoff, authentication errors abort)
3. Open the state store and queue one reconciliation pass
4. Start the executor, the watcher and the periodic scheduler
"""

from __future__ import annotations

import logging
import threading

from bucketsync.client.remote import (
    Bucket,
    RemoteClient,
    RemoteStore,
    create_remote_store,
)
from bucketsync.client.state import StateStore, StoreError
from bucketsync.client.sync.context import SyncContext
from bucketsync.client.sync.executor import TaskExecutor
from bucketsync.client.sync.queue import TaskQueue
from bucketsync.client.sync.retry import retry_with_backoff
from bucketsync.client.sync.scheduler import ReconcileScheduler
from bucketsync.client.sync.tasks.check_state import CheckStateTask
from bucketsync.client.sync.watcher import FileWatcher
from bucketsync.core.config import SyncConfig
from bucketsync.core.types import SyncState

logger = logging.getLogger(__name__)


def ensure_bucket(
    remote: RemoteClient,
    name: str,
    retries: int = 5,
    backoff: float = 1.0,
) -> Bucket:
    """Find a bucket by name, creating it if missing.

    Raises:
        AuthenticationError: If the credentials are rejected.
        RemoteError: If the remote stays unavailable after all retries.
    """

    def find_or_create() -> Bucket:
        for bucket in remote.get_buckets():
            if bucket.name == name:
                return bucket
        logger.info("Creating bucket %s", name)
        return remote.create_bucket(name)

    return retry_with_backoff(
        find_or_create,
        max_retries=retries,
        initial_backoff=backoff,
        description=f"Checking bucket {name}",
    )


class SyncEngine:
    """Explicitly constructed process-wide sync state.

    Usage:
        engine = SyncEngine(config)
        engine.start()
        try:
            while not engine.wait(1.0):
                pass
        finally:
            engine.stop()
    """

    def __init__(self, config: SyncConfig, remote_store: RemoteStore | None = None) -> None:
        """Initialize the engine.

        Args:
            config: Agent settings.
            remote_store: Remote store to use instead of the configured one.
        """
        self._config = config
        self._remote_store = remote_store
        self._ctx: SyncContext | None = None
        self._executor: TaskExecutor | None = None
        self._watcher: FileWatcher | None = None
        self._scheduler: ReconcileScheduler | None = None
        self._stopped = threading.Event()
        self._fatal_error: BaseException | None = None

    @property
    def config(self) -> SyncConfig:
        """Get the agent settings."""
        return self._config

    @property
    def context(self) -> SyncContext | None:
        """Get the engine context (None before startup)."""
        return self._ctx

    @property
    def fatal_error(self) -> BaseException | None:
        """Get the error that stopped the engine, if any."""
        return self._fatal_error

    def open(self) -> SyncContext:
        """Run the startup checks and build the engine context.

        Raises:
            AuthenticationError: If the remote rejects the credentials.
            RemoteError: If the bucket cannot be found or created.
            StoreError: If the state store cannot be opened.
        """
        if self._ctx is not None:
            return self._ctx

        config = self._config
        config.sync_dir.mkdir(parents=True, exist_ok=True)
        config.data_dir.mkdir(parents=True, exist_ok=True)

        store = self._remote_store or create_remote_store(
            config.remote, config.data_dir / "remote"
        )
        remote = RemoteClient(store, timeout=config.remote_timeout)
        try:
            bucket = ensure_bucket(
                remote,
                config.bucket_name,
                retries=config.startup_retries,
                backoff=config.retry_backoff,
            )
            state = StateStore(config.state_db_path)
        except Exception:
            remote.close()
            raise

        self._ctx = SyncContext.create(config, state, remote, bucket, TaskQueue())
        logger.info("Syncing %s with bucket %s", config.sync_dir, bucket.name)
        return self._ctx

    def start(self, watch: bool = True) -> None:
        """Start continuous synchronization.

        Args:
            watch: Whether to watch the sync folder for changes.
        """
        ctx = self.open()
        ctx.queue.add(CheckStateTask())

        self._executor = TaskExecutor(ctx, workers=self._config.workers, on_fatal=self._on_fatal)
        self._executor.start()

        if watch:
            self._watcher = FileWatcher(
                self._config.sync_dir,
                ctx.queue,
                debounce_ms=self._config.debounce_ms,
                ignore_patterns=ctx.ignore,
            )
            self._watcher.start()

        if self._config.reconcile_interval > 0:
            self._scheduler = ReconcileScheduler(ctx.queue, self._config.reconcile_interval)
            self._scheduler.start()

        logger.info("Sync engine started")

    def sync_once(self) -> dict[SyncState, int]:
        """Run one reconciliation pass and every task it leads to.

        Tasks run sequentially on the calling thread.

        Returns:
            Record count per state after the pass.

        Raises:
            StoreError: If the state store fails.
        """
        ctx = self.open()
        ctx.queue.add(CheckStateTask())
        executed = TaskExecutor(ctx, on_fatal=self._on_fatal).run_pending()
        logger.info("Sync pass finished: %d tasks executed", executed)
        return ctx.store.count_by_state()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the engine stops.

        Returns:
            True if the engine stopped (see ``fatal_error``).
        """
        return self._stopped.wait(timeout)

    def _on_fatal(self, error: BaseException) -> None:
        self._fatal_error = error
        logger.critical("Stopping sync engine: %s", error)
        self._stopped.set()

    def stop(self) -> None:
        """Stop synchronization and close the state store.

        In-flight tasks get ``shutdown_timeout`` seconds to finish; pending
        work left behind is re-derived by the next startup pass.
        """
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

        ctx = self._ctx
        if ctx is not None:
            ctx.queue.close()
        if self._executor is not None:
            self._executor.stop(timeout=self._config.shutdown_timeout)
            self._executor = None

        if ctx is not None:
            try:
                ctx.store.commit()
            except StoreError as e:
                logger.error("Final commit failed: %s", e)
            ctx.store.close()
            ctx.remote.close()
            self._ctx = None

        self._stopped.set()
        logger.info("Sync engine stopped")

    def __enter__(self) -> SyncEngine:
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
