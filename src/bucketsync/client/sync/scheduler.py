"""Periodic reconciliation.

This module provides:
- ReconcileScheduler: Queues a reconciliation pass at a fixed interval
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bucketsync.client.sync.tasks.check_state import CheckStateTask

if TYPE_CHECKING:
    from bucketsync.client.sync.queue import TaskQueue

logger = logging.getLogger(__name__)


class ReconcileScheduler:
    """Scheduler re-running the reconciliation task.

    The job only queues a CheckStateTask; the queue coalesces it with a pass
    that is still waiting, and parks it behind one that is running.
    """

    def __init__(self, queue: TaskQueue, interval: float) -> None:
        """Initialize the scheduler.

        Args:
            queue: Task queue to feed.
            interval: Seconds between passes.
        """
        self._queue = queue
        self._interval = interval
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._scheduler is not None

    def _reconcile_job(self) -> None:
        """Job function for scheduled reconciliation."""
        if self._queue.add(CheckStateTask()):
            logger.debug("Scheduled reconciliation queued")
        else:
            logger.debug("Reconciliation already pending")

    def start(self) -> None:
        """Start the scheduler."""
        if self._scheduler is not None:
            return  # Already running

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._reconcile_job,
            trigger=IntervalTrigger(seconds=self._interval),
            id="reconcile",
            name="Periodic reconciliation",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info("Reconciliation scheduler started (every %.0fs)", self._interval)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Reconciliation scheduler stopped")

    def run_now(self) -> bool:
        """Queue a reconciliation pass immediately.

        Returns:
            True if a new pass was queued.
        """
        return self._queue.add(CheckStateTask())
