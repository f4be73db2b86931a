"""Sync tasks.

Each task kind has a single ``execute(ctx)`` contract:
- CheckStateTask: reconciliation pass over the whole folder
- UploadTask / DownloadTask: transfers with remote probe
- DeleteLocalTask / DeleteCloudTask: propagate deletions
- LocalEventTask: apply a watcher observation to one record
"""

from bucketsync.client.sync.tasks.base import Task, TaskType, task_for_record
from bucketsync.client.sync.tasks.check_state import CHECK_STATE_KEY, CheckStateTask
from bucketsync.client.sync.tasks.delete import DeleteCloudTask, DeleteLocalTask
from bucketsync.client.sync.tasks.download import DownloadTask
from bucketsync.client.sync.tasks.local_event import LocalEventTask
from bucketsync.client.sync.tasks.upload import UploadTask

__all__ = [
    "CHECK_STATE_KEY",
    "CheckStateTask",
    "DeleteCloudTask",
    "DeleteLocalTask",
    "DownloadTask",
    "LocalEventTask",
    "Task",
    "TaskType",
    "UploadTask",
    "task_for_record",
]
