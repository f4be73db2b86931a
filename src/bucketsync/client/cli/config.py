"""Configuration utilities for the bucketsync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

from bucketsync.core.config import ConfigError, SyncConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the configuration directory for bucketsync.

    Returns:
        Path to ~/.bucketsync.
    """
    return Path.home() / ".bucketsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text(encoding="utf-8")))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2), encoding="utf-8")


def load_sync_config() -> SyncConfig:
    """Build the agent settings from the config file and environment.

    Raises:
        ConfigError: If bucketsync is not initialized or a value is invalid.
    """
    data = load_config()
    if not data:
        raise ConfigError("bucketsync is not initialized. Run 'bucketsync init' first.")
    data.setdefault("data_dir", str(get_config_dir()))
    return SyncConfig.from_dict(data)


def setup_logging(log_path: Path, verbose: bool = False) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
        verbose: Log DEBUG messages.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("bucketsync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Drop handlers from a previous invocation in the same process
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
