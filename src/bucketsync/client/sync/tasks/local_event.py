"""Watcher-originated task."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bucketsync.client.sync.reconcile import known_cloud, observe_local, reconcile_record
from bucketsync.client.sync.tasks.base import Task, TaskType, store_decision, task_for_record

if TYPE_CHECKING:
    from bucketsync.client.sync.context import SyncContext

logger = logging.getLogger(__name__)

EVENT_KINDS = ("created", "modified", "deleted")


class LocalEventTask(Task):
    """Applies a local change to a record inside a task boundary.

    The file is stat'ed when the task runs rather than trusting the event
    kind, so a burst of events collapses into the latest observation. The
    remote side is taken from the record's last observation; reconciliation
    passes catch up with remote changes.
    """

    task_type = TaskType.LOCAL_EVENT

    def __init__(self, name: str, kind: str = "modified") -> None:
        super().__init__(name)
        self.kind = kind

    def execute(self, ctx: SyncContext) -> Task | None:
        record = ctx.store.get(self.name)
        local = observe_local(ctx.local_path(self.name))
        logger.debug("Local %s: %s (%s)", self.kind, self.name, "present" if local else "absent")

        updated = reconcile_record(
            self.name,
            record,
            local,
            known_cloud(record),
            ctx.local_path(self.name),
            ctx.policy,
        )
        if store_decision(ctx.store, self.name, record, updated):
            ctx.store.commit()
        return task_for_record(updated)

    def __repr__(self) -> str:
        return f"LocalEventTask({self.name!r}, {self.kind!r})"
