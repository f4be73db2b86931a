"""Upload task."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bucketsync.client.remote import RemoteError
from bucketsync.client.sync.conflicts import ConflictError, resolve, same_content
from bucketsync.client.sync.machine import transition
from bucketsync.client.sync.reconcile import observe_local
from bucketsync.client.sync.retry import retry_with_backoff
from bucketsync.client.sync.tasks.base import (
    RecordTask,
    Task,
    TaskType,
    TransferProgress,
    task_for_record,
)
from bucketsync.client.sync.tasks.local_event import LocalEventTask
from bucketsync.core.types import CloudData, LocalData, SyncRecord, SyncState

if TYPE_CHECKING:
    from bucketsync.client.sync.context import SyncContext

logger = logging.getLogger(__name__)


class UploadTask(RecordTask):
    """Uploads a FOR_UPLOAD file.

    Flow:
    1. Probe the remote side (retried on transient errors). A copy with the
       same content is adopted; the stale copy from the last sync is deleted
       since the remote cannot overwrite by name; any other copy is a
       conflict.
    2. Upload once. Failure -> UPLOAD_FAILED.
    3. Re-read the record, store SYNCED with both observations and commit.
    """

    task_type = TaskType.UPLOAD
    state = SyncState.FOR_UPLOAD

    def execute(self, ctx: SyncContext) -> Task | None:
        record = self.current_record(ctx)
        if record is None:
            return None

        path = ctx.local_path(self.name)
        local = observe_local(path)
        if local is None:
            logger.info("%s disappeared before upload", self.name)
            return LocalEventTask(self.name, "deleted")

        try:
            adopted = retry_with_backoff(
                lambda: self._clear_remote(ctx, record, local),
                max_retries=ctx.config.probe_retries,
                initial_backoff=ctx.config.retry_backoff,
                description=f"Probing remote copy of {self.name}",
            )
            if adopted is not None:
                logger.info("%s already uploaded, adopting remote copy", self.name)
                return self._finish(ctx, record, local, adopted)

            logger.info("Uploading %s (%d bytes)", self.name, local.size)
            info = ctx.remote.upload_file(
                ctx.bucket,
                self.name,
                path,
                on_progress=TransferProgress("Uploading", self.name),
            )
        except ConflictError as e:
            resolved = resolve(record, ctx.policy, local, e.cloud)  # type: ignore[arg-type]
            ctx.store.upsert(resolved)
            ctx.store.commit()
            return task_for_record(resolved)
        except RemoteError as e:
            logger.warning("Upload of %s failed: %s", self.name, e)
            ctx.store.upsert(transition(record, SyncState.UPLOAD_FAILED, local_data=local))
            ctx.store.commit()
            return None

        return self._finish(ctx, record, local, CloudData.from_file_info(info))

    def _clear_remote(
        self,
        ctx: SyncContext,
        record: SyncRecord,
        local: LocalData,
    ) -> CloudData | None:
        """Remove the stale remote copy.

        Returns:
            The remote copy if it already holds the local content.

        Raises:
            ConflictError: If the remote copy changed since the last sync.
        """
        existing = ctx.remote.find_file(ctx.bucket, self.name)
        if existing is None:
            return None

        cloud = CloudData.from_file_info(existing)
        if same_content(ctx.local_path(self.name), local, cloud):
            return cloud
        if not cloud.same_version(record.cloud_data):
            raise ConflictError(self.name, local, cloud)

        logger.debug("Deleting stale remote copy of %s", self.name)
        ctx.remote.delete_file(ctx.bucket, existing)
        return None

    def _finish(
        self,
        ctx: SyncContext,
        record: SyncRecord,
        local: LocalData,
        cloud: CloudData,
    ) -> Task | None:
        current = ctx.store.get(self.name) or record
        ctx.store.upsert(
            transition(current, SyncState.SYNCED, local_data=local, cloud_data=cloud)
        )
        ctx.store.commit()
        logger.info("Uploaded %s", self.name)

        if observe_local(ctx.local_path(self.name)) != local:
            logger.info("%s changed during upload", self.name)
            return LocalEventTask(self.name, "modified")
        return None
