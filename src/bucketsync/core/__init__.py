"""Core module - Shared configuration and record types."""

from bucketsync.core.config import (
    CONFLICT_POLICIES,
    ConfigError,
    SyncConfig,
    default_data_dir,
)
from bucketsync.core.types import (
    CloudData,
    InvalidRecordError,
    LocalData,
    SyncRecord,
    SyncState,
)

__all__ = [
    # Config
    "CONFLICT_POLICIES",
    "ConfigError",
    "SyncConfig",
    "default_data_dir",
    # Types
    "CloudData",
    "InvalidRecordError",
    "LocalData",
    "SyncRecord",
    "SyncState",
]
