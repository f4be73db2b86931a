"""Reconciliation and task-orchestration engine.

This package provides:
- SyncEngine: Startup, continuous sync and shutdown
- SyncContext: Collaborators shared by all tasks
- TaskQueue / TaskExecutor: Per-name exclusive task scheduling
- reconcile_record: Pure reconciliation decisions
- ConflictPolicy: Configurable conflict tie-break
- FileWatcher: Local change feed (watchdog)
"""

from bucketsync.client.sync.conflicts import ConflictError, ConflictPolicy
from bucketsync.client.sync.context import SyncContext
from bucketsync.client.sync.engine import SyncEngine, ensure_bucket
from bucketsync.client.sync.executor import TaskExecutor
from bucketsync.client.sync.ignore import IgnorePatterns
from bucketsync.client.sync.machine import InvalidTransitionError
from bucketsync.client.sync.queue import TaskQueue
from bucketsync.client.sync.reconcile import reconcile_record
from bucketsync.client.sync.scheduler import ReconcileScheduler
from bucketsync.client.sync.tasks import (
    CheckStateTask,
    DeleteCloudTask,
    DeleteLocalTask,
    DownloadTask,
    LocalEventTask,
    Task,
    TaskType,
    UploadTask,
)
from bucketsync.client.sync.watcher import FileWatcher

__all__ = [
    "CheckStateTask",
    "ConflictError",
    "ConflictPolicy",
    "DeleteCloudTask",
    "DeleteLocalTask",
    "DownloadTask",
    "FileWatcher",
    "IgnorePatterns",
    "InvalidTransitionError",
    "LocalEventTask",
    "ReconcileScheduler",
    "SyncContext",
    "SyncEngine",
    "Task",
    "TaskExecutor",
    "TaskQueue",
    "TaskType",
    "UploadTask",
    "ensure_bucket",
    "reconcile_record",
]
