"""Delete tasks (local and remote)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bucketsync.client.remote import RemoteError
from bucketsync.client.sync.conflicts import ConflictError
from bucketsync.client.sync.machine import transition
from bucketsync.client.sync.reconcile import observe_local, reconcile_record
from bucketsync.client.sync.retry import retry_with_backoff
from bucketsync.client.sync.tasks.base import (
    RecordTask,
    Task,
    TaskType,
    store_decision,
    task_for_record,
)
from bucketsync.client.sync.tasks.local_event import LocalEventTask
from bucketsync.core.types import CloudData, SyncRecord, SyncState

if TYPE_CHECKING:
    from bucketsync.client.sync.context import SyncContext

logger = logging.getLogger(__name__)


class DeleteCloudTask(RecordTask):
    """Deletes the remote copy of a file deleted locally.

    On success the record is removed. On failure it stays FOR_CLOUD_DELETE
    and the next reconciliation pass re-drives it.
    """

    task_type = TaskType.DELETE_CLOUD
    state = SyncState.FOR_CLOUD_DELETE

    def execute(self, ctx: SyncContext) -> Task | None:
        record = self.current_record(ctx)
        if record is None:
            return None

        if observe_local(ctx.local_path(self.name)) is not None:
            logger.info("%s reappeared locally, not deleting remote copy", self.name)
            return LocalEventTask(self.name, "created")

        try:
            retry_with_backoff(
                lambda: self._delete(ctx, record),
                max_retries=ctx.config.probe_retries,
                initial_backoff=ctx.config.retry_backoff,
                description=f"Deleting remote copy of {self.name}",
            )
        except ConflictError as e:
            logger.info("%s changed remotely after local deletion, downloading it", self.name)
            updated = transition(record, SyncState.FOR_DOWNLOAD, local_data=None, cloud_data=e.cloud)
            ctx.store.upsert(updated)
            ctx.store.commit()
            return task_for_record(updated)
        except RemoteError as e:
            logger.warning("Remote delete of %s failed: %s", self.name, e)
            return None

        ctx.store.remove(self.name)
        ctx.store.commit()
        logger.info("Deleted remote copy of %s", self.name)
        return None

    def _delete(self, ctx: SyncContext, record: SyncRecord) -> None:
        existing = ctx.remote.find_file(ctx.bucket, self.name)
        if existing is None:
            return

        cloud = CloudData.from_file_info(existing)
        if not cloud.same_version(record.cloud_data):
            raise ConflictError(self.name, None, cloud)
        ctx.remote.delete_file(ctx.bucket, existing)


class DeleteLocalTask(RecordTask):
    """Deletes the local copy of a file deleted remotely.

    A local copy modified since its last observation is kept and
    re-derived into an upload instead. The remote side is checked again
    before unlinking, since the listing behind the decision may predate an
    upload; a remote copy that still exists re-derives the record.
    """

    task_type = TaskType.DELETE_LOCAL
    state = SyncState.FOR_LOCAL_DELETE

    def execute(self, ctx: SyncContext) -> Task | None:
        record = self.current_record(ctx)
        if record is None:
            return None

        path = ctx.local_path(self.name)
        local = observe_local(path)
        if local is not None and local != record.local_data:
            logger.info("%s changed locally after remote deletion, keeping it", self.name)
            return LocalEventTask(self.name, "modified")

        try:
            existing = retry_with_backoff(
                lambda: ctx.remote.find_file(ctx.bucket, self.name),
                max_retries=ctx.config.probe_retries,
                initial_backoff=ctx.config.retry_backoff,
                description=f"Probing remote copy of {self.name}",
            )
        except RemoteError as e:
            logger.warning("Cannot confirm remote deletion of %s: %s", self.name, e)
            return None

        if existing is not None:
            logger.info("%s still exists remotely, keeping local copy", self.name)
            cloud = CloudData.from_file_info(existing)
            updated = reconcile_record(self.name, record, local, cloud, path, ctx.policy)
            if store_decision(ctx.store, self.name, record, updated):
                ctx.store.commit()
            return task_for_record(updated)

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Local delete of %s failed: %s", self.name, e)
            return None

        ctx.store.remove(self.name)
        ctx.store.commit()
        logger.info("Deleted local copy of %s", self.name)
        return None
