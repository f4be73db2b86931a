"""Reconciliation decisions.

``reconcile_record`` derives the record a name should have from its stored
record and fresh observations of both sides. It performs no I/O besides
hashing the local file when content equality must be checked, so the same
inputs always produce the same decision and a pass can be re-run at any time.

Decision rules by stored state:

    none, NEW, CONFLICT
        local only -> FOR_UPLOAD, remote only -> FOR_DOWNLOAD,
        both -> SYNCED when the content matches, else conflict policy
    SYNCED
        compare each side with its last observation; a change on one side
        is propagated to the other (MODIFIED -> FOR_UPLOAD, FOR_DOWNLOAD),
        a deletion is propagated as FOR_CLOUD_DELETE / FOR_LOCAL_DELETE,
        changes on both sides go through the conflict policy
    FOR_UPLOAD, UPLOAD_FAILED, FOR_CLOUD_DELETE (local side pending)
        a remote copy with the same content is adopted as SYNCED; a remote
        copy that changed since the last sync is a conflict
    FOR_DOWNLOAD, DOWNLOAD_FAILED, FOR_LOCAL_DELETE (remote side pending)
        a local copy with the same content is adopted as SYNCED; a local
        copy that changed since the last observation is a conflict

A name missing on both sides has no record.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bucketsync.client.sync.conflicts import ConflictPolicy, resolve, same_content
from bucketsync.client.sync.machine import mark_modified, retry, transition
from bucketsync.core.types import CloudData, LocalData, SyncRecord, SyncState

logger = logging.getLogger(__name__)

S = SyncState

# States whose record needs a task to run
ACTION_STATES = frozenset(
    {S.FOR_UPLOAD, S.FOR_DOWNLOAD, S.FOR_LOCAL_DELETE, S.FOR_CLOUD_DELETE}
)

LOCAL_PENDING = frozenset({S.FOR_UPLOAD, S.FOR_CLOUD_DELETE})
REMOTE_PENDING = frozenset({S.FOR_DOWNLOAD, S.FOR_LOCAL_DELETE})


def observe_local(path: Path) -> LocalData | None:
    """Stat a file in the sync folder, or None if it is not a regular file."""
    try:
        if not path.is_file() or path.is_symlink():
            return None
        return LocalData.from_path(path)
    except FileNotFoundError:
        return None


def known_cloud(record: SyncRecord | None) -> CloudData | None:
    """Last known remote observation of a record.

    A record waiting for its local delete describes a remote copy that is
    already gone.
    """
    if record is None or record.state == S.FOR_LOCAL_DELETE:
        return None
    return record.cloud_data


def reconcile_record(
    name: str,
    record: SyncRecord | None,
    local: LocalData | None,
    cloud: CloudData | None,
    local_path: Path,
    policy: ConflictPolicy,
) -> SyncRecord | None:
    """Derive the record a name should have.

    Args:
        name: File name.
        record: Stored record, or None.
        local: Current local observation, or None if the file is absent.
        cloud: Current remote observation, or None if the file is absent.
        local_path: Path of the local file (used for content comparison).
        policy: Conflict policy.

    Returns:
        The record to store, or None if the name must have no record.
    """
    if local is None and cloud is None:
        return None

    if record is None:
        record = SyncRecord(name=name)
    else:
        record = retry(record)

    if record.state == S.SYNCED:
        return _decide_synced(record, local, cloud, local_path, policy)
    if record.state in LOCAL_PENDING:
        return _decide_local_pending(record, local, cloud, local_path, policy)
    if record.state in REMOTE_PENDING:
        return _decide_remote_pending(record, local, cloud, local_path, policy)
    return _decide_fresh(record, local, cloud, local_path, policy)


def _converge(
    record: SyncRecord,
    local: LocalData,
    cloud: CloudData,
    local_path: Path,
    policy: ConflictPolicy,
) -> SyncRecord:
    if same_content(local_path, local, cloud):
        return transition(record, S.SYNCED, local_data=local, cloud_data=cloud)
    return resolve(record, policy, local, cloud)


def _decide_fresh(
    record: SyncRecord,
    local: LocalData | None,
    cloud: CloudData | None,
    local_path: Path,
    policy: ConflictPolicy,
) -> SyncRecord:
    if cloud is None:
        return transition(record, S.FOR_UPLOAD, local_data=local, cloud_data=None)
    if local is None:
        return transition(record, S.FOR_DOWNLOAD, local_data=None, cloud_data=cloud)
    return _converge(record, local, cloud, local_path, policy)


def _decide_synced(
    record: SyncRecord,
    local: LocalData | None,
    cloud: CloudData | None,
    local_path: Path,
    policy: ConflictPolicy,
) -> SyncRecord:
    local_changed = local != record.local_data

    if local is None:
        if cloud.same_version(record.cloud_data):  # type: ignore[union-attr]
            return transition(record, S.FOR_CLOUD_DELETE, cloud_data=cloud)
        return transition(record, S.FOR_DOWNLOAD, local_data=None, cloud_data=cloud)

    if cloud is None:
        if not local_changed:
            return transition(record, S.FOR_LOCAL_DELETE)
        return transition(record, S.FOR_UPLOAD, local_data=local, cloud_data=None)

    cloud_changed = not cloud.same_version(record.cloud_data)
    if not local_changed and not cloud_changed:
        return record
    if not cloud_changed:
        if same_content(local_path, local, cloud):
            return transition(record, S.SYNCED, local_data=local, cloud_data=cloud)
        return mark_modified(record, local_data=local)
    if not local_changed:
        return transition(record, S.FOR_DOWNLOAD, cloud_data=cloud)
    return _converge(record, local, cloud, local_path, policy)


def _decide_local_pending(
    record: SyncRecord,
    local: LocalData | None,
    cloud: CloudData | None,
    local_path: Path,
    policy: ConflictPolicy,
) -> SyncRecord:
    if local is None:
        if cloud.same_version(record.cloud_data):  # type: ignore[union-attr]
            return transition(record, S.FOR_CLOUD_DELETE, cloud_data=cloud)
        return transition(record, S.FOR_DOWNLOAD, local_data=None, cloud_data=cloud)

    if cloud is None:
        return transition(record, S.FOR_UPLOAD, local_data=local, cloud_data=None)

    if same_content(local_path, local, cloud):
        return transition(record, S.SYNCED, local_data=local, cloud_data=cloud)
    if cloud.same_version(record.cloud_data):
        return transition(record, S.FOR_UPLOAD, local_data=local, cloud_data=cloud)
    return resolve(record, policy, local, cloud)


def _decide_remote_pending(
    record: SyncRecord,
    local: LocalData | None,
    cloud: CloudData | None,
    local_path: Path,
    policy: ConflictPolicy,
) -> SyncRecord:
    if cloud is None:
        if record.local_data is not None and local == record.local_data:
            return transition(record, S.FOR_LOCAL_DELETE, local_data=local)
        return transition(record, S.FOR_UPLOAD, local_data=local, cloud_data=None)

    if local is None:
        return transition(record, S.FOR_DOWNLOAD, local_data=None, cloud_data=cloud)

    if same_content(local_path, local, cloud):
        return transition(record, S.SYNCED, local_data=local, cloud_data=cloud)
    if local == record.local_data:
        return transition(record, S.FOR_DOWNLOAD, cloud_data=cloud)
    return resolve(record, policy, local, cloud)
