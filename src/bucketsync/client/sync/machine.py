"""Synchronization state machine.

States (see SyncState):
    (absent) -> FOR_UPLOAD | FOR_DOWNLOAD
    FOR_UPLOAD -> SYNCED | UPLOAD_FAILED
    UPLOAD_FAILED -> FOR_UPLOAD
    FOR_DOWNLOAD -> SYNCED | DOWNLOAD_FAILED
    DOWNLOAD_FAILED -> FOR_DOWNLOAD
    SYNCED -> MODIFIED -> FOR_UPLOAD
    SYNCED -> FOR_DOWNLOAD | FOR_CLOUD_DELETE | FOR_LOCAL_DELETE
    FOR_CLOUD_DELETE, FOR_LOCAL_DELETE -> (removed)
    any pending state -> CONFLICT -> FOR_UPLOAD | FOR_DOWNLOAD

Pending and failed states may also be re-derived when reconciliation finds
that one side changed again before the pending work ran. All transitions are
validated; the store validates the data-presence invariant on write.
"""

from __future__ import annotations

import logging

from bucketsync.core.types import SyncRecord, SyncState

logger = logging.getLogger(__name__)

S = SyncState

# Valid state transitions (same-state moves refresh metadata and are always allowed)
VALID_TRANSITIONS: dict[SyncState, frozenset[SyncState]] = {
    S.NEW: frozenset({S.FOR_UPLOAD, S.FOR_DOWNLOAD, S.SYNCED, S.CONFLICT}),
    S.FOR_UPLOAD: frozenset(
        {S.SYNCED, S.UPLOAD_FAILED, S.FOR_DOWNLOAD, S.FOR_CLOUD_DELETE, S.CONFLICT}
    ),
    S.UPLOAD_FAILED: frozenset(
        {S.FOR_UPLOAD, S.SYNCED, S.FOR_DOWNLOAD, S.FOR_CLOUD_DELETE, S.CONFLICT}
    ),
    S.SYNCED: frozenset(
        {
            S.MODIFIED,
            S.FOR_UPLOAD,
            S.FOR_DOWNLOAD,
            S.FOR_CLOUD_DELETE,
            S.FOR_LOCAL_DELETE,
            S.CONFLICT,
        }
    ),
    S.MODIFIED: frozenset({S.FOR_UPLOAD, S.CONFLICT}),
    S.FOR_DOWNLOAD: frozenset(
        {S.SYNCED, S.DOWNLOAD_FAILED, S.FOR_UPLOAD, S.FOR_LOCAL_DELETE, S.CONFLICT}
    ),
    S.DOWNLOAD_FAILED: frozenset(
        {S.FOR_DOWNLOAD, S.SYNCED, S.FOR_UPLOAD, S.FOR_LOCAL_DELETE, S.CONFLICT}
    ),
    S.FOR_LOCAL_DELETE: frozenset({S.FOR_UPLOAD, S.FOR_DOWNLOAD, S.SYNCED, S.CONFLICT}),
    S.FOR_CLOUD_DELETE: frozenset({S.FOR_UPLOAD, S.FOR_DOWNLOAD, S.SYNCED, S.CONFLICT}),
    S.CONFLICT: frozenset({S.FOR_UPLOAD, S.FOR_DOWNLOAD, S.SYNCED}),
}

# States whose record is removed once the pending delete completes
DELETE_STATES = frozenset({S.FOR_LOCAL_DELETE, S.FOR_CLOUD_DELETE})

# States left for a human or a later pass to re-drive
FAILED_STATES = frozenset({S.UPLOAD_FAILED, S.DOWNLOAD_FAILED})
ATTENTION_STATES = FAILED_STATES | {S.CONFLICT}

# State a failed or intermediate record is re-driven to
RETRY_STATES: dict[SyncState, SyncState] = {
    S.UPLOAD_FAILED: S.FOR_UPLOAD,
    S.DOWNLOAD_FAILED: S.FOR_DOWNLOAD,
    S.MODIFIED: S.FOR_UPLOAD,
}


class InvalidTransitionError(Exception):
    """Raised when attempting an invalid state transition."""


def can_transition(source: SyncState, target: SyncState) -> bool:
    """Check whether a move between two states is legal."""
    return source == target or target in VALID_TRANSITIONS[source]


def transition(record: SyncRecord, target: SyncState, **changes: object) -> SyncRecord:
    """Derive a record in a new state.

    Args:
        record: Current record (NEW for a name without a record).
        target: State to move to.
        **changes: Replaced ``local_data`` / ``cloud_data`` fields.

    Returns:
        The new record (not persisted).

    Raises:
        InvalidTransitionError: If the move is not allowed.
    """
    if not can_transition(record.state, target):
        raise InvalidTransitionError(
            f"{record.name}: cannot transition from {record.state.name} to {target.name}"
        )
    if record.state != target:
        logger.debug("%s: %s -> %s", record.name, record.state.name, target.name)
    return record.evolve(state=target, **changes)


def mark_modified(record: SyncRecord, **changes: object) -> SyncRecord:
    """Move a SYNCED record through MODIFIED to FOR_UPLOAD."""
    modified = transition(record, S.MODIFIED, **changes)
    return transition(modified, S.FOR_UPLOAD)


def retry(record: SyncRecord) -> SyncRecord:
    """Re-drive a failed or intermediate record to its pending state.

    Records in any other state are returned unchanged.
    """
    target = RETRY_STATES.get(record.state)
    if target is None:
        return record
    return transition(record, target)
