"""Engine context shared by all tasks."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from bucketsync.client.sync.conflicts import ConflictPolicy
from bucketsync.client.sync.ignore import IgnorePatterns

if TYPE_CHECKING:
    from bucketsync.client.remote import Bucket, RemoteClient
    from bucketsync.client.state import StateStore
    from bucketsync.client.sync.queue import TaskQueue
    from bucketsync.core.config import SyncConfig


@dataclass
class SyncContext:
    """Process-wide collaborators, built once at startup and passed to tasks.

    Attributes:
        config: Agent settings.
        store: Persistent state store.
        remote: Blocking remote client.
        bucket: Bucket being synchronized.
        queue: Task queue.
        ignore: Names never synchronized.
        policy: Conflict resolution policy.
    """

    config: SyncConfig
    store: StateStore
    remote: RemoteClient
    bucket: Bucket
    queue: TaskQueue
    ignore: IgnorePatterns
    policy: ConflictPolicy = ConflictPolicy.NEWEST

    @classmethod
    def create(
        cls,
        config: SyncConfig,
        store: StateStore,
        remote: RemoteClient,
        bucket: Bucket,
        queue: TaskQueue,
    ) -> SyncContext:
        """Build a context from the agent settings."""
        return cls(
            config=config,
            store=store,
            remote=remote,
            bucket=bucket,
            queue=queue,
            ignore=IgnorePatterns.for_folder(config.sync_dir, config.ignore_patterns),
            policy=ConflictPolicy(config.conflict_policy),
        )

    def local_path(self, name: str) -> Path:
        """Get the path of a file in the sync folder."""
        return self.config.sync_dir / name
