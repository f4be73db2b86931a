"""Conflict detection and resolution.

A conflict is a name whose local and remote copies both changed since the
last sync with diverging content. It is not a failure: the configured policy
picks a winner deterministically, and the losing side's task is re-derived
(upload when local wins, download when remote wins).

Policies:
    newest: last writer wins (local mtime vs remote creation marker; ties go
        to the remote side)
    local: local copy always wins
    remote: remote copy always wins
    manual: record stays CONFLICT until the user removes one side
"""

from __future__ import annotations

import hashlib
import logging
import re
from enum import Enum
from pathlib import Path

from bucketsync.client.sync.machine import can_transition, transition
from bucketsync.core.types import CloudData, LocalData, SyncRecord, SyncState

logger = logging.getLogger(__name__)

HASH_BLOCK_SIZE = 64 * 1024
MD5_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class ConflictPolicy(str, Enum):
    """How a conflict between local and remote changes is resolved."""

    NEWEST = "newest"
    LOCAL = "local"
    REMOTE = "remote"
    MANUAL = "manual"


class Side(Enum):
    """Winning side of a conflict."""

    LOCAL = "local"
    REMOTE = "remote"


class ConflictError(Exception):
    """Both sides of a file changed concurrently.

    Raised by transfer probes and resolved by the task that caught it.
    """

    def __init__(
        self,
        name: str,
        local: LocalData | None,
        cloud: CloudData | None,
        message: str = "",
    ) -> None:
        super().__init__(message or f"{name}: local and remote copies diverged")
        self.name = name
        self.local = local
        self.cloud = cloud


def pick_winner(
    policy: ConflictPolicy,
    local: LocalData,
    cloud: CloudData,
) -> Side | None:
    """Pick the winning side of a conflict.

    The result depends only on the policy and the two observations, so the
    same inputs always resolve the same way.

    Returns:
        The winning side, or None under the manual policy.
    """
    if policy == ConflictPolicy.LOCAL:
        return Side.LOCAL
    if policy == ConflictPolicy.REMOTE:
        return Side.REMOTE
    if policy == ConflictPolicy.MANUAL:
        return None

    if cloud.created is not None and local.mtime > cloud.created:
        return Side.LOCAL
    return Side.REMOTE


def resolve(
    record: SyncRecord,
    policy: ConflictPolicy,
    local: LocalData,
    cloud: CloudData,
) -> SyncRecord:
    """Derive the record that applies a conflict resolution.

    Args:
        record: Current record for the name.
        policy: Configured conflict policy.
        local: Current local observation.
        cloud: Current remote observation.

    Returns:
        FOR_UPLOAD or FOR_DOWNLOAD record for the winning side, or a CONFLICT
        record under the manual policy.
    """
    winner = pick_winner(policy, local, cloud)
    changes = {"local_data": local, "cloud_data": cloud}

    if winner is None:
        if record.state != SyncState.CONFLICT:
            logger.warning("%s: conflict left for manual resolution", record.name)
        return transition(record, SyncState.CONFLICT, **changes)

    logger.info(
        "%s: conflict resolved in favor of %s copy (policy: %s)",
        record.name,
        winner.value,
        policy.value,
    )
    target = SyncState.FOR_UPLOAD if winner == Side.LOCAL else SyncState.FOR_DOWNLOAD
    if not can_transition(record.state, target):
        record = transition(record, SyncState.CONFLICT, **changes)
    return transition(record, target, **changes)


def file_md5(path: Path) -> str:
    """Compute the MD5 hex digest of a file."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        while block := f.read(HASH_BLOCK_SIZE):
            digest.update(block)
    return digest.hexdigest()


def same_content(path: Path, local: LocalData, cloud: CloudData) -> bool:
    """Check whether the local file and the remote copy hold the same bytes.

    Sizes must match. A plain MD5 remote hash is compared with the local
    file's MD5; other version markers fall back to treating a remote copy
    created after the local modification as the same content.
    """
    if local.size != cloud.size:
        return False

    if MD5_PATTERN.match(cloud.hash.lower()):
        try:
            return file_md5(path) == cloud.hash.lower()
        except OSError:
            return False

    return cloud.created is not None and cloud.created >= local.mtime
