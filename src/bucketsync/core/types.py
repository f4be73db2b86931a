"""Shared types for bucketsync.

This module defines the per-file synchronization record and the metadata
captured for each side (local folder and remote bucket).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bucketsync.client.remote import FileInfo


class SyncState(str, Enum):
    """Synchronization state of a single file.

    Stored as its value in the state database.
    """

    NEW = "new"
    FOR_UPLOAD = "for_upload"
    UPLOAD_FAILED = "upload_failed"
    SYNCED = "synced"
    MODIFIED = "modified"
    FOR_DOWNLOAD = "for_download"
    DOWNLOAD_FAILED = "download_failed"
    FOR_LOCAL_DELETE = "for_local_delete"
    FOR_CLOUD_DELETE = "for_cloud_delete"
    CONFLICT = "conflict"


# States whose pending work needs the corresponding side's metadata
REQUIRES_CLOUD_DATA = frozenset(
    {SyncState.FOR_DOWNLOAD, SyncState.DOWNLOAD_FAILED, SyncState.FOR_LOCAL_DELETE}
)
REQUIRES_LOCAL_DATA = frozenset(
    {SyncState.FOR_UPLOAD, SyncState.UPLOAD_FAILED, SyncState.FOR_CLOUD_DELETE}
)


class InvalidRecordError(ValueError):
    """Raised when a record's state disagrees with the metadata it carries."""


@dataclass(frozen=True)
class LocalData:
    """Local file metadata captured at last observation.

    Attributes:
        mtime: Modification time (seconds since epoch).
        size: Size in bytes.
    """

    mtime: float
    size: int

    @classmethod
    def from_path(cls, path: Path) -> LocalData:
        """Stat a local file.

        Raises:
            OSError: If the file cannot be stat'ed.
        """
        stat = os.stat(path)
        return cls(mtime=stat.st_mtime, size=stat.st_size)


@dataclass(frozen=True)
class CloudData:
    """Remote file metadata captured at last observation.

    Attributes:
        file_id: Identifier assigned by the remote store.
        size: Size in bytes.
        hash: Content hash or version marker reported by the remote store.
        created: Remote modification marker (seconds since epoch), if known.
    """

    file_id: str
    size: int
    hash: str
    created: float | None = None

    @classmethod
    def from_file_info(cls, info: FileInfo) -> CloudData:
        """Capture metadata from a remote listing entry."""
        return cls(
            file_id=info.file_id,
            size=info.size,
            hash=info.hash,
            created=info.created,
        )

    def same_version(self, other: CloudData | None) -> bool:
        """Check whether two observations describe the same remote object."""
        if other is None:
            return False
        return self.file_id == other.file_id and self.hash == other.hash


@dataclass(frozen=True)
class SyncRecord:
    """Synchronization record of one file, keyed by name.

    Records are immutable snapshots; use ``evolve`` to derive a changed copy
    and hand it to the state store.
    """

    name: str
    state: SyncState = SyncState.NEW
    local_data: LocalData | None = None
    cloud_data: CloudData | None = None

    def evolve(self, **changes: object) -> SyncRecord:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)  # type: ignore[arg-type]

    @property
    def is_bare(self) -> bool:
        """True when neither side has been observed yet."""
        return self.local_data is None and self.cloud_data is None

    def validate(self) -> None:
        """Check the record can be persisted.

        Raises:
            InvalidRecordError: If no side was observed, or the state needs
                metadata the record does not carry.
        """
        if self.is_bare:
            raise InvalidRecordError(f"{self.name}: record has neither local nor cloud data")
        if self.state in REQUIRES_CLOUD_DATA and self.cloud_data is None:
            raise InvalidRecordError(f"{self.name}: {self.state.name} requires cloud data")
        if self.state in REQUIRES_LOCAL_DATA and self.local_data is None:
            raise InvalidRecordError(f"{self.name}: {self.state.name} requires local data")
        if self.state in (SyncState.SYNCED, SyncState.CONFLICT) and (
            self.local_data is None or self.cloud_data is None
        ):
            raise InvalidRecordError(
                f"{self.name}: {self.state.name} requires local and cloud data"
            )

    def __str__(self) -> str:
        return f"{self.name} [{self.state.name}]"
