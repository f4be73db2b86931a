"""File system watcher adapter.

This module provides:
- FileWatcher: Watches the sync folder using watchdog
- DebouncedEventHandler: Coalesces rapid events per name and queues one
  LocalEventTask per changed file

Only files directly inside the sync folder are watched. Moves are delivered
as a deletion of the source name plus a creation of the destination name.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from bucketsync.client.sync.ignore import IgnorePatterns
from bucketsync.client.sync.tasks.local_event import LocalEventTask

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from bucketsync.client.sync.queue import TaskQueue

logger = logging.getLogger(__name__)


def _as_path(raw: str | bytes) -> Path:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return Path(raw)


class DebouncedEventHandler(FileSystemEventHandler):
    """Event handler that debounces rapid file system events."""

    def __init__(
        self,
        base_path: Path,
        queue: TaskQueue,
        debounce_ms: int = 250,
        ignore_patterns: IgnorePatterns | None = None,
    ) -> None:
        """Initialize the debounced handler.

        Args:
            base_path: Base directory being watched.
            queue: Task queue to feed.
            debounce_ms: Debounce window in milliseconds.
            ignore_patterns: Patterns for files to ignore.
        """
        super().__init__()
        self._base_path = base_path
        self._queue = queue
        self._debounce_s = debounce_ms / 1000
        self._ignore = ignore_patterns or IgnorePatterns()

        # Latest change kind per file name
        self._pending: dict[str, str] = {}
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def _record(self, path: Path, kind: str) -> None:
        if self._ignore.should_ignore(path, self._base_path):
            return

        with self._lock:
            self._pending[path.name] = kind
            if self._timer:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce_s, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> int:
        """Queue one task per pending change.

        Returns:
            Number of tasks queued.
        """
        with self._lock:
            changes = list(self._pending.items())
            self._pending.clear()
            self._timer = None

        queued = 0
        for name, kind in changes:
            if self._queue.add(LocalEventTask(name, kind)):
                queued += 1
            logger.debug("Watcher: %s %s", kind, name)
        return queued

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if isinstance(event, FileCreatedEvent):
            self._record(_as_path(event.src_path), "created")

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event."""
        if isinstance(event, FileModifiedEvent):
            self._record(_as_path(event.src_path), "modified")

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event."""
        if isinstance(event, FileDeletedEvent):
            self._record(_as_path(event.src_path), "deleted")

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event as delete + create."""
        if isinstance(event, FileMovedEvent):
            self._record(_as_path(event.src_path), "deleted")
            self._record(_as_path(event.dest_path), "created")

    def stop(self) -> None:
        """Stop any pending timers."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None


class FileWatcher:
    """Watches the sync folder and feeds the task queue."""

    def __init__(
        self,
        watch_path: Path,
        queue: TaskQueue,
        debounce_ms: int = 250,
        ignore_patterns: IgnorePatterns | None = None,
    ) -> None:
        """Initialize the file watcher.

        Args:
            watch_path: Directory to watch.
            queue: Task queue to feed.
            debounce_ms: Debounce window in milliseconds.
            ignore_patterns: Patterns for files to ignore.

        Raises:
            ValueError: If the watch path is not a directory.
        """
        self._watch_path = Path(watch_path).resolve()
        if not self._watch_path.is_dir():
            raise ValueError(f"Watch path must be a directory: {watch_path}")

        self._handler = DebouncedEventHandler(
            base_path=self._watch_path,
            queue=queue,
            debounce_ms=debounce_ms,
            ignore_patterns=ignore_patterns
            or IgnorePatterns.for_folder(self._watch_path),
        )
        self._observer: BaseObserver = Observer()
        self._running = False

    @property
    def watch_path(self) -> Path:
        """Get the watched directory path."""
        return self._watch_path

    @property
    def handler(self) -> DebouncedEventHandler:
        """Get the event handler."""
        return self._handler

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def start(self) -> None:
        """Start watching for changes."""
        if self._running:
            return

        self._observer.schedule(self._handler, str(self._watch_path), recursive=False)
        self._observer.start()
        self._running = True
        logger.info("Watching %s", self._watch_path)

    def stop(self) -> None:
        """Stop watching for changes."""
        if not self._running:
            return

        self._handler.stop()
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._running = False

    def __enter__(self) -> FileWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
