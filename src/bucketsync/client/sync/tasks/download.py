"""Download task."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from bucketsync.client.remote import PermanentRemoteError, RemoteError
from bucketsync.client.sync.conflicts import ConflictError, resolve, same_content
from bucketsync.client.sync.ignore import PARTIAL_SUFFIX
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
from bucketsync.core.types import CloudData, LocalData, SyncRecord, SyncState

if TYPE_CHECKING:
    from bucketsync.client.remote import FileInfo
    from bucketsync.client.sync.context import SyncContext

logger = logging.getLogger(__name__)


class DownloadTask(RecordTask):
    """Downloads a FOR_DOWNLOAD file.

    The file is written to a partial file next to its target and moved into
    place only if the local copy did not change meanwhile, so a concurrent
    local edit is never overwritten without going through the conflict
    policy.
    """

    task_type = TaskType.DOWNLOAD
    state = SyncState.FOR_DOWNLOAD

    def execute(self, ctx: SyncContext) -> Task | None:
        record = self.current_record(ctx)
        if record is None:
            return None

        path = ctx.local_path(self.name)
        partial = path.with_name(self.name + PARTIAL_SUFFIX)
        local = observe_local(path)

        try:
            if local is not None and local != record.local_data:
                raise ConflictError(
                    self.name,
                    local,
                    record.cloud_data,
                    f"{self.name} changed locally before download",
                )

            existing = retry_with_backoff(
                lambda: self._probe(ctx),
                max_retries=ctx.config.probe_retries,
                initial_backoff=ctx.config.retry_backoff,
                description=f"Probing remote copy of {self.name}",
            )
            cloud = CloudData.from_file_info(existing)

            logger.info("Downloading %s (%d bytes)", self.name, cloud.size)
            ctx.remote.download_file(
                ctx.bucket,
                self.name,
                partial,
                on_progress=TransferProgress("Downloading", self.name),
            )

            current = observe_local(path)
            if current is not None and current != local:
                raise ConflictError(self.name, current, cloud, f"{self.name} changed during download")
            os.replace(partial, path)
            downloaded = LocalData.from_path(path)
        except ConflictError as e:
            return self._resolve(ctx, record, e)
        except (RemoteError, OSError) as e:
            logger.warning("Download of %s failed: %s", self.name, e)
            ctx.store.upsert(transition(record, SyncState.DOWNLOAD_FAILED))
            ctx.store.commit()
            return None
        finally:
            partial.unlink(missing_ok=True)

        current_record = ctx.store.get(self.name) or record
        ctx.store.upsert(
            transition(
                current_record,
                SyncState.SYNCED,
                local_data=downloaded,
                cloud_data=cloud,
            )
        )
        ctx.store.commit()
        logger.info("Downloaded %s", self.name)
        return None

    def _probe(self, ctx: SyncContext) -> FileInfo:
        existing = ctx.remote.find_file(ctx.bucket, self.name)
        if existing is None:
            raise PermanentRemoteError(f"{self.name} no longer exists remotely")
        return existing

    def _resolve(self, ctx: SyncContext, record: SyncRecord, error: ConflictError) -> Task | None:
        cloud = error.cloud or record.cloud_data
        if same_content(ctx.local_path(self.name), error.local, cloud):  # type: ignore[arg-type]
            updated = transition(record, SyncState.SYNCED, local_data=error.local, cloud_data=cloud)
        else:
            updated = resolve(record, ctx.policy, error.local, cloud)  # type: ignore[arg-type]
        ctx.store.upsert(updated)
        ctx.store.commit()
        return task_for_record(updated)
