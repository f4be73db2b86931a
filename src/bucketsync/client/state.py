"""Persistent state store for the sync agent.

This module provides:
- StateStore: SQLite-backed mapping from file name to SyncRecord
- StoreError: Raised when the underlying storage is unavailable

Architecture:
    Writes are buffered in an open SQLite transaction until commit() is
    called. Tasks commit after every observable state transition, so a crash
    between a remote side effect and the commit leaves the previous state on
    disk and the next reconciliation pass detects the discrepancy.

    Every operation takes the store lock, so readers never observe a
    partially written record and callers on different threads are
    serialized.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from bucketsync.core.types import (
    CloudData,
    LocalData,
    SyncRecord,
    SyncState,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the state database cannot be read or written."""


def _record_from_row(row: sqlite3.Row) -> SyncRecord:
    """Create a SyncRecord from a database row."""
    local_data = None
    if row["local_mtime"] is not None:
        local_data = LocalData(mtime=row["local_mtime"], size=row["local_size"])

    cloud_data = None
    if row["cloud_id"] is not None:
        cloud_data = CloudData(
            file_id=row["cloud_id"],
            size=row["cloud_size"],
            hash=row["cloud_hash"],
            created=row["cloud_created"],
        )

    return SyncRecord(
        name=row["name"],
        state=SyncState(row["state"]),
        local_data=local_data,
        cloud_data=cloud_data,
    )


class StateStore:
    """SQLite-based store of synchronization records.

    Usage:
        store = StateStore(data_dir / "sync.db")
        record = store.get_or_create("a.txt")
        store.upsert(record.evolve(state=SyncState.FOR_UPLOAD, local_data=...))
        store.commit()
        store.close()
    """

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the state database.

        Args:
            db_path: Path to SQLite database file.

        Raises:
            StoreError: If the database cannot be opened.
        """
        self._db_path = Path(db_path)
        self._lock = threading.RLock()
        self._closed = False

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open state database {self._db_path}: {e}") from e

        logger.debug("Opened state store at %s", self._db_path)

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sync_files (
                name TEXT PRIMARY KEY,
                state TEXT NOT NULL,
                local_mtime REAL,
                local_size INTEGER,
                cloud_id TEXT,
                cloud_size INTEGER,
                cloud_hash TEXT,
                cloud_created REAL,
                updated_at REAL NOT NULL
            );
        """)

    @property
    def path(self) -> Path:
        """Get the database file path."""
        return self._db_path

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Serialize access and translate SQLite errors into StoreError."""
        with self._lock:
            if self._closed:
                raise StoreError(f"Cannot {operation}: state store is closed")
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"Cannot {operation}: {e}") from e

    # === Record operations ===

    def get(self, name: str) -> SyncRecord | None:
        """Get the record for a file name, or None if absent."""
        with self._guard("read record") as conn:
            row = conn.execute(
                "SELECT * FROM sync_files WHERE name = ?",
                (name,),
            ).fetchone()
        if row is None:
            return None
        return _record_from_row(row)

    def get_or_create(self, name: str) -> SyncRecord:
        """Get the record for a file name, or a bare NEW record.

        The bare record is not persisted: a record without local or cloud
        data must not exist in the store, so it only lands there once the
        caller upserts it with metadata attached.
        """
        record = self.get(name)
        if record is None:
            record = SyncRecord(name=name)
        return record

    def upsert(self, record: SyncRecord) -> None:
        """Insert or replace the persisted record for its name.

        Raises:
            InvalidRecordError: If the record violates the data invariants.
            StoreError: If the database is unavailable.
        """
        record.validate()
        local = record.local_data
        cloud = record.cloud_data

        with self._guard("write record") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sync_files (
                    name, state, local_mtime, local_size,
                    cloud_id, cloud_size, cloud_hash, cloud_created, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.name,
                    record.state.value,
                    local.mtime if local else None,
                    local.size if local else None,
                    cloud.file_id if cloud else None,
                    cloud.size if cloud else None,
                    cloud.hash if cloud else None,
                    cloud.created if cloud else None,
                    time.time(),
                ),
            )
        logger.debug("Stored %s", record)

    def remove(self, name: str) -> bool:
        """Delete the record for a file name.

        Returns:
            True if a record was removed.
        """
        with self._guard("remove record") as conn:
            cursor = conn.execute("DELETE FROM sync_files WHERE name = ?", (name,))
        return cursor.rowcount > 0

    def list_all(self) -> list[SyncRecord]:
        """List all records ordered by name."""
        with self._guard("list records") as conn:
            rows = conn.execute("SELECT * FROM sync_files ORDER BY name").fetchall()
        return [_record_from_row(row) for row in rows]

    def count_by_state(self) -> dict[SyncState, int]:
        """Count records per state (states without records are omitted)."""
        with self._guard("count records") as conn:
            rows = conn.execute(
                "SELECT state, COUNT(*) AS n FROM sync_files GROUP BY state"
            ).fetchall()
        return {SyncState(row["state"]): row["n"] for row in rows}

    # === Durability ===

    def commit(self) -> None:
        """Flush pending writes to durable storage.

        Raises:
            StoreError: If the commit fails. Callers must not report success
                to anyone after this.
        """
        with self._guard("commit") as conn:
            conn.commit()

    def close(self) -> None:
        """Close the database. Uncommitted writes are discarded."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._conn.close()
        logger.debug("Closed state store at %s", self._db_path)

    def __len__(self) -> int:
        """Get number of records."""
        with self._guard("count records") as conn:
            row = conn.execute("SELECT COUNT(*) FROM sync_files").fetchone()
        return int(row[0])

    def __contains__(self, name: object) -> bool:
        """Check if a record exists for a file name."""
        return isinstance(name, str) and self.get(name) is not None
