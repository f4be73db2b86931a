"""Configuration for the bucketsync agent.

This module defines the settings shared by the sync engine and the CLI.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

CONFLICT_POLICIES = ("newest", "local", "remote", "manual")
REMOTE_TYPES = ("local", "s3")

# Environment variables overriding remote settings (credentials stay out of
# the config file)
REMOTE_ENV_VARS = {
    "type": "BUCKETSYNC_REMOTE_TYPE",
    "path": "BUCKETSYNC_REMOTE_PATH",
    "endpoint_url": "BUCKETSYNC_S3_ENDPOINT",
    "access_key": "BUCKETSYNC_S3_ACCESS_KEY",
    "secret_key": "BUCKETSYNC_S3_SECRET_KEY",
    "region": "BUCKETSYNC_S3_REGION",
}


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""


def default_data_dir() -> Path:
    """Get the default application data directory."""
    return Path.home() / ".bucketsync"


@dataclass
class SyncConfig:
    """Settings of one sync agent.

    Attributes:
        sync_dir: Local folder kept in sync with the bucket.
        data_dir: Application data folder (state database, logs).
        bucket_name: Name of the remote bucket.
        workers: Number of executor threads (1 = strictly sequential).
        remote_timeout: Seconds to wait for a remote callback before the
            call is treated as a transient failure.
        probe_retries: Retries of the pre-transfer remote probe.
        startup_retries: Retries when checking/creating the bucket at startup.
        retry_backoff: Initial backoff in seconds between retries.
        reconcile_interval: Seconds between periodic reconciliation passes
            (0 disables them).
        shutdown_timeout: Seconds to wait for in-flight tasks on shutdown.
        debounce_ms: Watcher debounce window in milliseconds.
        conflict_policy: One of ``CONFLICT_POLICIES``.
        ignore_patterns: Extra glob patterns never synchronized.
        remote: Remote adapter settings (``type`` plus adapter options).
    """

    sync_dir: Path
    data_dir: Path = field(default_factory=default_data_dir)
    bucket_name: str = "bucketsync"
    workers: int = 1
    remote_timeout: float = 300.0
    probe_retries: int = 3
    startup_retries: int = 5
    retry_backoff: float = 1.0
    reconcile_interval: float = 600.0
    shutdown_timeout: float = 10.0
    debounce_ms: int = 250
    conflict_policy: str = "newest"
    ignore_patterns: list[str] = field(default_factory=list)
    remote: dict[str, str | None] = field(default_factory=lambda: {"type": "local"})

    def __post_init__(self) -> None:
        """Normalize paths and validate values."""
        self.sync_dir = Path(self.sync_dir).expanduser()
        self.data_dir = Path(self.data_dir).expanduser()

        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if self.remote_timeout <= 0:
            raise ConfigError("remote_timeout must be positive")
        if self.reconcile_interval < 0:
            raise ConfigError("reconcile_interval must not be negative")
        if self.conflict_policy not in CONFLICT_POLICIES:
            raise ConfigError(
                f"Unknown conflict policy: {self.conflict_policy} "
                f"(expected one of {', '.join(CONFLICT_POLICIES)})"
            )
        remote_type = self.remote.get("type") or "local"
        if remote_type not in REMOTE_TYPES:
            raise ConfigError(f"Unknown remote type: {remote_type}")

    @property
    def state_db_path(self) -> Path:
        """Path of the persisted state store."""
        return self.data_dir / "sync.db"

    @property
    def log_path(self) -> Path:
        """Path of the agent log file."""
        return self.data_dir / "bucketsync.log"

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        environ: dict[str, str] | None = None,
    ) -> SyncConfig:
        """Build a config from a parsed JSON mapping.

        Unknown keys are ignored. Remote settings found in the environment
        take precedence over the mapping.

        Raises:
            ConfigError: If ``sync_dir`` is missing or a value is invalid.
        """
        if not data.get("sync_dir"):
            raise ConfigError("Missing required config key: sync_dir")

        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in data.items() if key in known}

        remote = dict(values.get("remote") or {"type": "local"})
        env = os.environ if environ is None else environ
        for key, var in REMOTE_ENV_VARS.items():
            if env.get(var):
                remote[key] = env[var]
        values["remote"] = remote

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping (secrets excluded)."""
        data = asdict(self)
        data["sync_dir"] = str(self.sync_dir)
        data["data_dir"] = str(self.data_dir)
        data["remote"] = {
            key: value
            for key, value in self.remote.items()
            if key not in ("access_key", "secret_key")
        }
        return data
