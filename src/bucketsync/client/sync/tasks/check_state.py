"""Reconciliation task."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from bucketsync.client.remote import RemoteError
from bucketsync.client.sync.reconcile import observe_local, reconcile_record
from bucketsync.client.sync.tasks.base import Task, TaskType, store_decision, task_for_record
from bucketsync.core.types import CloudData, SyncState

if TYPE_CHECKING:
    from bucketsync.client.remote import FileInfo
    from bucketsync.client.sync.context import SyncContext

logger = logging.getLogger(__name__)

CHECK_STATE_KEY = "/check-state"


class CheckStateTask(Task):
    """Compares the local folder, the bucket and the store.

    Each name is claimed in the queue while its record is rewritten, so the
    pass never races a task working on the same file; names with a queued or
    running task are skipped and left to that task. Every decision is
    derived from fresh observations, so an interrupted pass is simply run
    again.

    Attributes:
        enqueued: Number of tasks queued by the last run.
    """

    task_type = TaskType.CHECK_STATE

    def __init__(self) -> None:
        super().__init__(CHECK_STATE_KEY)
        self.enqueued = 0

    def execute(self, ctx: SyncContext) -> Task | None:
        self.enqueued = 0
        try:
            remote_files = ctx.remote.list_files(ctx.bucket)
        except RemoteError as e:
            logger.warning("Reconciliation skipped, cannot list remote files: %s", e)
            return None

        remote = self._remote_by_name(ctx, remote_files)
        local_names = self._local_names(ctx)
        stored_names = {record.name for record in ctx.store.list_all()}

        names = sorted(local_names | remote.keys() | stored_names)
        skipped = 0
        for name in names:
            if not ctx.queue.claim(name):
                skipped += 1
                continue
            try:
                task = self._reconcile(ctx, name, remote.get(name))
            finally:
                ctx.queue.release(name)
            if task is not None and ctx.queue.add(task):
                self.enqueued += 1

        logger.info(
            "Reconciliation checked %d files: %d tasks queued, %d busy",
            len(names),
            self.enqueued,
            skipped,
        )
        return None

    def _reconcile(self, ctx: SyncContext, name: str, info: FileInfo | None) -> Task | None:
        record = ctx.store.get(name)
        path = ctx.local_path(name)
        cloud = CloudData.from_file_info(info) if info is not None else None

        local = observe_local(path)
        updated = reconcile_record(name, record, local, cloud, path, ctx.policy)
        if updated is not None and updated.state == SyncState.FOR_LOCAL_DELETE:
            # The listing may predate an upload that finished since
            try:
                info = ctx.remote.find_file(ctx.bucket, name)
            except RemoteError as e:
                logger.warning("Cannot confirm remote deletion of %s: %s", name, e)
                return None
            if info is not None:
                cloud = CloudData.from_file_info(info)
                updated = reconcile_record(name, record, local, cloud, path, ctx.policy)

        if store_decision(ctx.store, name, record, updated):
            ctx.store.commit()
        return task_for_record(updated)

    def _remote_by_name(self, ctx: SyncContext, files: list[FileInfo]) -> dict[str, FileInfo]:
        remote: dict[str, FileInfo] = {}
        for info in files:
            if "/" in info.name or ctx.ignore.matches(info.name):
                logger.debug("Ignoring remote file %s", info.name)
                continue
            remote[info.name] = info
        return remote

    def _local_names(self, ctx: SyncContext) -> set[str]:
        with os.scandir(ctx.config.sync_dir) as entries:
            return {
                entry.name
                for entry in entries
                if entry.is_file(follow_symlinks=False) and not ctx.ignore.matches(entry.name)
            }
