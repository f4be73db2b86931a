"""Task executor.

This module provides:
- TaskExecutor: Pool of worker threads draining the task queue

Each worker takes a task (its key marked in flight), executes it, releases
the key and queues the returned follow-up task. Exceptions are caught at the
task boundary so one failing file never stops the others. StoreError is the
exception: the store is the source of truth for every decision, so it is
reported to ``on_fatal`` and the executor stops taking tasks.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum, auto
from typing import TYPE_CHECKING

from bucketsync.client.state import StoreError

if TYPE_CHECKING:
    from bucketsync.client.sync.context import SyncContext
    from bucketsync.client.sync.tasks.base import Task

logger = logging.getLogger(__name__)

TAKE_TIMEOUT = 0.5  # seconds between stop checks


class ExecutorState(Enum):
    """State of the executor."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()


class TaskExecutor:
    """Runs queued tasks on a bounded pool of threads.

    Usage:
        executor = TaskExecutor(ctx, workers=2, on_fatal=engine.fail)
        executor.start()
        ...
        executor.stop(timeout=10.0)
    """

    def __init__(
        self,
        ctx: SyncContext,
        workers: int = 1,
        on_fatal: Callable[[BaseException], None] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            ctx: Engine context (the queue is taken from it).
            workers: Number of worker threads (1 = strictly sequential).
            on_fatal: Called once with the error that must stop the process.
        """
        self._ctx = ctx
        self._queue = ctx.queue
        self._max_workers = max(workers, 1)
        self._on_fatal = on_fatal

        self._state = ExecutorState.STOPPED
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._workers: list[threading.Thread] = []

        # Statistics
        self._completed_count = 0
        self._error_count = 0
        self._fatal_error: BaseException | None = None

    @property
    def state(self) -> ExecutorState:
        """Get current executor state."""
        return self._state

    @property
    def completed_count(self) -> int:
        """Get number of tasks that ran to completion."""
        return self._completed_count

    @property
    def error_count(self) -> int:
        """Get number of tasks that raised."""
        return self._error_count

    @property
    def fatal_error(self) -> BaseException | None:
        """Get the error that stopped the executor, if any."""
        return self._fatal_error

    def start(self) -> None:
        """Start the worker threads."""
        with self._lock:
            if self._state != ExecutorState.STOPPED:
                logger.warning("Task executor already running")
                return

            self._state = ExecutorState.RUNNING
            self._stop_event.clear()
            for i in range(self._max_workers):
                thread = threading.Thread(
                    target=self._worker_loop,
                    name=f"TaskExecutor-{i}",
                    daemon=True,
                )
                thread.start()
                self._workers.append(thread)

        logger.info("Task executor started with %d workers", self._max_workers)

    def stop(self, timeout: float = 10.0) -> bool:
        """Stop taking tasks and wait for in-flight ones.

        Args:
            timeout: Maximum total time to wait for workers to finish.

        Returns:
            True if every worker finished within the timeout.
        """
        with self._lock:
            if self._state == ExecutorState.STOPPED:
                return True
            self._state = ExecutorState.STOPPING
            self._stop_event.set()
            workers = list(self._workers)

        logger.info("Task executor stopping...")
        deadline = time.monotonic() + timeout
        for worker in workers:
            if worker is threading.current_thread():
                continue
            worker.join(timeout=max(deadline - time.monotonic(), 0))

        finished = not any(worker.is_alive() for worker in workers)
        if not finished:
            logger.warning(
                "Task executor stopped with tasks still running: %s",
                ", ".join(sorted(self._queue.in_flight)),
            )

        with self._lock:
            self._state = ExecutorState.STOPPED
            self._workers.clear()
        logger.info("Task executor stopped")
        return finished

    def run_pending(self) -> int:
        """Run queued tasks on the calling thread until the queue is empty.

        Returns:
            Number of tasks executed.

        Raises:
            StoreError: If the state store fails.
        """
        count = 0
        while (task := self._queue.take(timeout=0)) is not None:
            self._run(task, reraise_fatal=True)
            count += 1
        return count

    def _worker_loop(self) -> None:
        """Main loop for worker threads."""
        while not self._stop_event.is_set():
            task = self._queue.take(timeout=TAKE_TIMEOUT)
            if task is None:
                if self._queue.is_closed:
                    break
                continue
            try:
                self._run(task, reraise_fatal=False)
            except Exception:
                logger.exception("Unexpected error in worker loop")

    def _run(self, task: Task, reraise_fatal: bool) -> None:
        """Execute one task and queue its follow-up."""
        follow_up: Task | None = None
        try:
            logger.debug("Running %r", task)
            follow_up = task.execute(self._ctx)
            with self._lock:
                self._completed_count += 1
        except StoreError as e:
            with self._lock:
                self._error_count += 1
            logger.critical("State store failure while running %r: %s", task, e)
            self._fail(e)
            if reraise_fatal:
                raise
        except Exception:
            with self._lock:
                self._error_count += 1
            logger.exception("Task %r failed", task)
        finally:
            self._queue.done(task)

        if follow_up is not None:
            self._queue.add(follow_up)

    def _fail(self, error: BaseException) -> None:
        with self._lock:
            if self._fatal_error is not None:
                return
            self._fatal_error = error
            self._stop_event.set()
        if self._on_fatal is not None:
            self._on_fatal(error)
