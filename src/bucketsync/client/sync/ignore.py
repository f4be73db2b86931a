"""Ignore patterns for file synchronization.

This module provides:
- IgnorePatterns: fnmatch-style matching of file names
- DEFAULT_IGNORE_PATTERNS: Common patterns to ignore
- PARTIAL_SUFFIX: Suffix of the engine's own partial downloads
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".bsync-part"
IGNORE_FILE_NAME = ".syncignore"

DEFAULT_IGNORE_PATTERNS = [
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
    "*.tmp",
    "*.temp",
    "~*",
    "*.swp",
    "*.swo",
    f"*{PARTIAL_SUFFIX}",
    IGNORE_FILE_NAME,
]


class IgnorePatterns:
    """Decides which names in the sync folder are never synchronized."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: Extra fnmatch patterns added to the defaults.
        """
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        if patterns:
            self._patterns.extend(patterns)

    @classmethod
    def for_folder(cls, sync_dir: Path, patterns: list[str] | None = None) -> IgnorePatterns:
        """Build patterns for a sync folder, reading its .syncignore if any."""
        ignore = cls(patterns)
        ignore.load_from_file(sync_dir / IGNORE_FILE_NAME)
        return ignore

    @property
    def patterns(self) -> list[str]:
        """Get a copy of the active patterns."""
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern."""
        self._patterns.append(pattern)

    def load_from_file(self, path: Path) -> None:
        """Load patterns from a .syncignore file."""
        if not path.exists():
            return
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                # Skip comments and empty lines
                if line and not line.startswith("#"):
                    self._patterns.append(line)
        logger.debug("Loaded ignore patterns from %s", path)

    def matches(self, name: str) -> bool:
        """Check whether a file name matches an ignore pattern."""
        return any(fnmatch.fnmatch(name, pattern) for pattern in self._patterns)

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        """Check if a path should be ignored.

        Only regular files directly inside the sync folder are synchronized;
        nested paths, directories and symlinks are ignored.

        Args:
            path: Absolute path to check.
            base_path: Base sync directory path.

        Returns:
            True if the path should be ignored.
        """
        if path.is_symlink():
            return True
        if path.parent != base_path:
            return True
        if path.is_dir():
            return True
        return self.matches(path.name)
