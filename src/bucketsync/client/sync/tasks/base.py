"""Task contract.

A task is a unit of work on one key. The executor takes it from the queue
with its key marked in flight, calls ``execute`` and then releases the key;
the follow-up task ``execute`` may return is queued afterwards.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

from bucketsync.core.types import SyncRecord, SyncState

if TYPE_CHECKING:
    from bucketsync.client.state import StateStore
    from bucketsync.client.sync.context import SyncContext

logger = logging.getLogger(__name__)

PROGRESS_STEP = 25  # percent between progress log lines


class TaskType(Enum):
    """Closed set of task kinds."""

    CHECK_STATE = "check_state"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE_LOCAL = "delete_local"
    DELETE_CLOUD = "delete_cloud"
    LOCAL_EVENT = "local_event"


class Task(ABC):
    """A unit of work on one file name."""

    task_type: TaskType

    def __init__(self, name: str) -> None:
        self.name = name

    @property
    def key(self) -> str:
        """Deduplication key."""
        return self.name

    @abstractmethod
    def execute(self, ctx: SyncContext) -> Task | None:
        """Run the task.

        Remote and local I/O failures are handled here and recorded as a
        state transition. StoreError propagates.

        Args:
            ctx: Engine context.

        Returns:
            Follow-up task to queue once this one has released its key.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Task):
            return NotImplemented
        return self.task_type == other.task_type and self.key == other.key

    def __hash__(self) -> int:
        return hash((self.task_type, self.key))


class TransferProgress:
    """Progress callback for one upload or download.

    Logs the first report, then one line each time the transfer advances by
    ``step`` percent, and the completion.

    Attributes:
        percent: Last logged percentage, -1 before the first report.
    """

    def __init__(self, action: str, name: str, step: int = PROGRESS_STEP) -> None:
        self.action = action
        self.name = name
        self.step = step
        self.percent = -1

    def __call__(self, current: int, total: int) -> None:
        percent = 100 if total <= 0 else min(current * 100 // total, 100)
        if percent == self.percent:
            return
        if self.percent >= 0 and percent < 100 and percent < self.percent + self.step:
            return
        self.percent = percent
        logger.debug(
            "%s %s: %d%% (%d/%d bytes)", self.action, self.name, percent, current, total
        )


class RecordTask(Task):
    """Task acting on a record that must be in a given state."""

    state: SyncState

    def current_record(self, ctx: SyncContext) -> SyncRecord | None:
        """Re-read the record, or None if it no longer needs this task."""
        record = ctx.store.get(self.name)
        if record is None or record.state != self.state:
            logger.debug(
                "Skipping %r: record is %s",
                self,
                record.state.name if record else "absent",
            )
            return None
        return record


def store_decision(
    store: StateStore,
    name: str,
    record: SyncRecord | None,
    updated: SyncRecord | None,
) -> bool:
    """Persist a derived record (without committing).

    Returns:
        True if the store changed.
    """
    if updated is None:
        if record is None:
            return False
        store.remove(name)
        logger.info("%s: no copy left on either side, record removed", name)
        return True

    if updated == record:
        return False

    store.upsert(updated)
    if record is None or record.state != updated.state:
        logger.info("%s: %s", name, updated.state.name)
    return True


def task_for_record(record: SyncRecord | None) -> Task | None:
    """Get the task a record's state requires, if any."""
    # Import here to avoid circular imports
    from bucketsync.client.sync.tasks.delete import DeleteCloudTask, DeleteLocalTask
    from bucketsync.client.sync.tasks.download import DownloadTask
    from bucketsync.client.sync.tasks.upload import UploadTask

    if record is None:
        return None
    task_class: type[RecordTask] | None = {
        SyncState.FOR_UPLOAD: UploadTask,
        SyncState.FOR_DOWNLOAD: DownloadTask,
        SyncState.FOR_LOCAL_DELETE: DeleteLocalTask,
        SyncState.FOR_CLOUD_DELETE: DeleteCloudTask,
    }.get(record.state)
    if task_class is None:
        return None
    return task_class(record.name)
