"""Task queue with per-name exclusivity.

This module provides:
- TaskQueue: Thread-safe FIFO queue deduplicated by task key

Every key (a file name, or the reserved key of the reconciliation task) is in
at most one of these places at any time:
- queued: waiting in FIFO order
- in flight: taken by a worker, or claimed by reconciliation

A task added for a queued key is coalesced into a no-op. A task added for an
in-flight key is parked (the most recent one wins) and queued when the key is
released, so a watcher event arriving during a transfer is not lost while no
two tasks ever touch the same record concurrently.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bucketsync.client.sync.tasks.base import Task

logger = logging.getLogger(__name__)


class TaskQueue:
    """Thread-safe FIFO of tasks, at most one queued or running per key.

    Usage:
        queue = TaskQueue()
        queue.add(UploadTask("a.txt"))
        task = queue.take(timeout=1.0)
        try:
            follow_up = task.execute(ctx)
        finally:
            queue.done(task)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._pending: deque[Task] = deque()
        self._queued: set[str] = set()
        self._in_flight: set[str] = set()
        self._parked: dict[str, Task] = {}
        self._closed = False

    def add(self, task: Task) -> bool:
        """Add a task unless its key is already queued or running.

        Args:
            task: The task to add.

        Returns:
            True if the task was queued. False if it was coalesced with a
            queued task, parked behind a running one, or the queue is closed.
        """
        with self._lock:
            if self._closed:
                logger.debug("Queue closed, dropping %r", task)
                return False

            key = task.key
            if key in self._queued:
                logger.debug("Coalesced %r with queued task", task)
                return False

            if key in self._in_flight:
                self._parked[key] = task
                logger.debug("Parked %r until %s is released", task, key)
                return False

            self._enqueue(task)
            return True

    def _enqueue(self, task: Task) -> None:
        self._pending.append(task)
        self._queued.add(task.key)
        self._changed.notify_all()
        logger.debug("Queued %r (queue size: %d)", task, len(self._pending))

    def take(self, timeout: float | None = None) -> Task | None:
        """Take the oldest task and mark its key in flight.

        Blocks until a task is available.

        Args:
            timeout: Maximum seconds to wait (None = wait forever).

        Returns:
            The task, or None on timeout or when the queue is closed and empty.
        """
        with self._changed:
            deadline = None if timeout is None else time.monotonic() + timeout

            while not self._pending and not self._closed:
                if deadline is None:
                    self._changed.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._changed.wait(timeout=remaining)

            if not self._pending:
                return None

            task = self._pending.popleft()
            self._queued.discard(task.key)
            self._in_flight.add(task.key)
            return task

    def done(self, task: Task) -> None:
        """Mark a taken task as finished."""
        self.release(task.key)

    def claim(self, key: str) -> bool:
        """Reserve a key without a task.

        Returns:
            True if the key was free and is now in flight.
        """
        with self._lock:
            if self._closed or key in self._queued or key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def release(self, key: str) -> None:
        """Release an in-flight key and queue the task parked behind it."""
        with self._lock:
            self._in_flight.discard(key)
            parked = self._parked.pop(key, None)
            if parked is not None and not self._closed:
                self._enqueue(parked)
            self._changed.notify_all()

    def is_busy(self, key: str) -> bool:
        """Check if a key has a queued or running task."""
        with self._lock:
            return key in self._queued or key in self._in_flight

    @property
    def in_flight(self) -> frozenset[str]:
        """Get the keys currently running or claimed."""
        with self._lock:
            return frozenset(self._in_flight)

    def pending(self) -> list[Task]:
        """Get a snapshot of queued tasks in FIFO order."""
        with self._lock:
            return list(self._pending)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no task is queued or running.

        Returns:
            True if the queue became idle before the timeout.
        """
        with self._changed:
            return self._changed.wait_for(
                lambda: not self._pending and not self._in_flight,
                timeout=timeout,
            )

    def close(self) -> None:
        """Close the queue and wake up waiting threads.

        Queued tasks can still be taken; new tasks are dropped.
        """
        with self._lock:
            self._closed = True
            self._parked.clear()
            self._changed.notify_all()
            logger.debug("Task queue closed")

    @property
    def is_closed(self) -> bool:
        """Check if queue is closed."""
        return self._closed

    def __len__(self) -> int:
        """Get number of queued tasks."""
        with self._lock:
            return len(self._pending)
