"""Tests for the task executor."""

from __future__ import annotations

import threading
import time

import pytest

from bucketsync.client.state import StoreError
from bucketsync.client.sync.context import SyncContext
from bucketsync.client.sync.executor import ExecutorState, TaskExecutor
from bucketsync.client.sync.tasks import LocalEventTask, UploadTask
from bucketsync.client.sync.tasks.base import Task, TaskType
from bucketsync.core.types import SyncState


class _RecordingTask(Task):
    """Task that records its runs and optionally fails."""

    task_type = TaskType.LOCAL_EVENT

    def __init__(self, name: str, error: Exception | None = None, follow_up: Task | None = None):
        super().__init__(name)
        self.error = error
        self.follow_up = follow_up
        self.runs = 0

    def execute(self, ctx: SyncContext) -> Task | None:
        self.runs += 1
        if self.error is not None:
            raise self.error
        return self.follow_up


class _OverlapTracker:
    """Counts concurrent runs per key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.running: dict[str, int] = {}
        self.max_running: dict[str, int] = {}
        self.runs = 0

    def enter(self, key: str) -> None:
        with self._lock:
            self.running[key] = self.running.get(key, 0) + 1
            self.max_running[key] = max(self.max_running.get(key, 0), self.running[key])
            self.runs += 1

    def leave(self, key: str) -> None:
        with self._lock:
            self.running[key] -= 1


class _TrackedTask(Task):
    """Task that reports its runs to an overlap tracker."""

    task_type = TaskType.LOCAL_EVENT

    def __init__(self, name: str, tracker: _OverlapTracker):
        super().__init__(name)
        self.tracker = tracker

    def execute(self, ctx: SyncContext) -> Task | None:
        self.tracker.enter(self.key)
        time.sleep(0.001)
        self.tracker.leave(self.key)
        return None


class TestRunPending:
    """Tests for running tasks on the calling thread."""

    def test_runs_queued_tasks_and_follow_ups(self, ctx: SyncContext, write_file) -> None:
        """Follow-up tasks are run in the same drain."""
        write_file(ctx.local_path("a.txt"), "hello")
        ctx.queue.add(LocalEventTask("a.txt", "created"))
        executor = TaskExecutor(ctx)

        assert executor.run_pending() == 2

        assert ctx.store.get("a.txt").state == SyncState.SYNCED
        assert executor.completed_count == 2
        assert len(ctx.queue) == 0
        assert ctx.queue.in_flight == frozenset()

    def test_failing_task_is_isolated(self, ctx: SyncContext) -> None:
        """A task error is logged and the next task still runs."""
        failing = _RecordingTask("a.txt", error=RuntimeError("boom"))
        healthy = _RecordingTask("b.txt")
        ctx.queue.add(failing)
        ctx.queue.add(healthy)
        executor = TaskExecutor(ctx)

        executor.run_pending()

        assert failing.runs == 1
        assert healthy.runs == 1
        assert executor.error_count == 1
        assert not ctx.queue.is_busy("a.txt")

    def test_follow_up_queued_after_release(self, ctx: SyncContext) -> None:
        """A follow-up for the same key is not parked behind its parent."""
        second = _RecordingTask("a.txt")
        ctx.queue.add(_RecordingTask("a.txt", follow_up=second))

        TaskExecutor(ctx).run_pending()

        assert second.runs == 1

    def test_store_error_is_fatal(self, ctx: SyncContext) -> None:
        """StoreError is reported and re-raised."""
        errors: list[BaseException] = []
        ctx.queue.add(_RecordingTask("a.txt", error=StoreError("disk full")))
        ctx.queue.add(_RecordingTask("b.txt"))
        executor = TaskExecutor(ctx, on_fatal=errors.append)

        with pytest.raises(StoreError):
            executor.run_pending()

        assert isinstance(executor.fatal_error, StoreError)
        assert errors == [executor.fatal_error]
        assert not ctx.queue.is_busy("a.txt")


class TestWorkerThreads:
    """Tests for the threaded executor."""

    def test_start_and_stop(self, ctx: SyncContext) -> None:
        """Workers drain the queue until stopped."""
        executor = TaskExecutor(ctx, workers=2)
        executor.start()
        assert executor.state == ExecutorState.RUNNING

        tasks = [_RecordingTask(f"{i}.txt") for i in range(5)]
        for task in tasks:
            ctx.queue.add(task)

        assert ctx.queue.wait_idle(timeout=5.0)
        assert executor.stop(timeout=5.0) is True
        assert executor.state == ExecutorState.STOPPED
        assert [task.runs for task in tasks] == [1] * 5

    def test_stop_when_not_started(self, ctx: SyncContext) -> None:
        assert TaskExecutor(ctx).stop() is True

    def test_fatal_error_in_worker(self, ctx: SyncContext) -> None:
        """A store failure on a worker thread is reported once."""
        fatal = threading.Event()
        errors: list[BaseException] = []

        def on_fatal(error: BaseException) -> None:
            errors.append(error)
            fatal.set()

        executor = TaskExecutor(ctx, on_fatal=on_fatal)
        executor.start()
        ctx.queue.add(_RecordingTask("a.txt", error=StoreError("disk full")))

        assert fatal.wait(timeout=5.0)
        executor.stop(timeout=5.0)
        assert len(errors) == 1
        assert isinstance(executor.fatal_error, StoreError)

    def test_workers_exit_when_queue_closes(self, ctx: SyncContext) -> None:
        """Closing the queue ends the worker loops."""
        executor = TaskExecutor(ctx, workers=2)
        executor.start()
        ctx.queue.add(UploadTask("missing.txt"))
        ctx.queue.close()

        assert executor.stop(timeout=5.0) is True

    def test_one_task_per_name_with_concurrent_producers(self, ctx: SyncContext) -> None:
        """Shared names never run or queue twice at the same time."""
        tracker = _OverlapTracker()
        names = ["a.txt", "b.txt", "c.txt"]
        duplicates: list[list[str]] = []
        executor = TaskExecutor(ctx, workers=4)
        executor.start()

        def produce() -> None:
            for i in range(200):
                ctx.queue.add(_TrackedTask(names[i % len(names)], tracker))
                keys = [task.key for task in ctx.queue.pending()]
                if len(keys) != len(set(keys)):
                    duplicates.append(keys)

        producers = [threading.Thread(target=produce) for _ in range(4)]
        for thread in producers:
            thread.start()
        for thread in producers:
            thread.join(timeout=10.0)

        assert ctx.queue.wait_idle(timeout=10.0)
        assert executor.stop(timeout=5.0) is True
        assert tracker.runs > 0
        assert max(tracker.max_running.values()) == 1
        assert duplicates == []
        assert executor.completed_count == tracker.runs
        assert executor.error_count == 0
