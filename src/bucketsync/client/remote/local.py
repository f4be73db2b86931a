"""Directory-backed remote store for development and testing.

Buckets are sub-directories of the store root. Each object is stored as a
plain file next to a JSON sidecar in ``.meta/`` holding its id, MD5 hash and
upload time. Like the production stores it targets, it refuses to overwrite
an existing name: callers must delete the old object first.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
import uuid
from pathlib import Path

from bucketsync.client.remote.base import (
    Bucket,
    CallbackRemoteStore,
    FileInfo,
    PermanentRemoteError,
    ProgressCallback,
)

logger = logging.getLogger(__name__)

COPY_BLOCK_SIZE = 64 * 1024
META_DIR = ".meta"


class LocalDirRemoteStore(CallbackRemoteStore):
    """Remote store kept in a local directory."""

    def __init__(self, root: Path | str, max_workers: int = 4) -> None:
        """Initialize the store.

        Args:
            root: Directory holding one sub-directory per bucket.
            max_workers: Maximum concurrent operations.
        """
        super().__init__(max_workers=max_workers)
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        """Return the local store path."""
        return f"Local directory: {self._root}"

    def _bucket_dir(self, bucket: Bucket) -> Path:
        path = self._root / bucket.bucket_id
        if not path.is_dir():
            raise PermanentRemoteError(f"Bucket not found: {bucket.name}")
        return path

    def _meta_path(self, bucket_dir: Path, name: str) -> Path:
        return bucket_dir / META_DIR / f"{name}.json"

    def _read_meta(self, bucket_dir: Path, name: str) -> FileInfo | None:
        meta_path = self._meta_path(bucket_dir, name)
        if not meta_path.exists():
            return None
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
        return FileInfo(
            file_id=meta["file_id"],
            name=name,
            size=meta["size"],
            hash=meta["hash"],
            created=meta["created"],
        )

    def _do_get_buckets(self) -> list[Bucket]:
        return [
            Bucket(bucket_id=path.name, name=path.name)
            for path in sorted(self._root.iterdir())
            if path.is_dir()
        ]

    def _do_create_bucket(self, name: str) -> Bucket:
        path = self._root / name
        if path.exists():
            raise PermanentRemoteError(f"Bucket already exists: {name}")
        (path / META_DIR).mkdir(parents=True)
        logger.debug("Created bucket %s in %s", name, self._root)
        return Bucket(bucket_id=name, name=name)

    def _do_list_files(self, bucket: Bucket) -> list[FileInfo]:
        bucket_dir = self._bucket_dir(bucket)
        files: list[FileInfo] = []
        meta_dir = bucket_dir / META_DIR
        if not meta_dir.is_dir():
            return files
        for meta_path in sorted(meta_dir.glob("*.json")):
            info = self._read_meta(bucket_dir, meta_path.name[: -len(".json")])
            if info is not None:
                files.append(info)
        return files

    def _do_upload_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None,
    ) -> FileInfo:
        bucket_dir = self._bucket_dir(bucket)
        if self._read_meta(bucket_dir, name) is not None:
            raise PermanentRemoteError(f"File already exists: {name}")

        target = bucket_dir / name
        tmp_path = bucket_dir / f".{name}.{uuid.uuid4().hex}.upload"
        digest = hashlib.md5()
        total = os.path.getsize(local_path)
        copied = 0

        try:
            with open(local_path, "rb") as src, open(tmp_path, "wb") as dst:
                while block := src.read(COPY_BLOCK_SIZE):
                    digest.update(block)
                    dst.write(block)
                    copied += len(block)
                    if on_progress:
                        on_progress(copied, total)
            os.replace(tmp_path, target)
        finally:
            tmp_path.unlink(missing_ok=True)

        info = FileInfo(
            file_id=uuid.uuid4().hex,
            name=name,
            size=copied,
            hash=digest.hexdigest(),
            created=time.time(),
        )
        meta_path = self._meta_path(bucket_dir, name)
        meta_path.parent.mkdir(exist_ok=True)
        meta_path.write_text(
            json.dumps(
                {
                    "file_id": info.file_id,
                    "size": info.size,
                    "hash": info.hash,
                    "created": info.created,
                }
            ),
            encoding="utf-8",
        )
        return info

    def _do_download_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None,
    ) -> None:
        bucket_dir = self._bucket_dir(bucket)
        info = self._read_meta(bucket_dir, name)
        if info is None:
            raise PermanentRemoteError(f"File not found: {name}")

        copied = 0
        with open(bucket_dir / name, "rb") as src, open(local_path, "wb") as dst:
            while block := src.read(COPY_BLOCK_SIZE):
                dst.write(block)
                copied += len(block)
                if on_progress:
                    on_progress(copied, info.size)

    def _do_delete_file(self, bucket: Bucket, file_info: FileInfo) -> None:
        bucket_dir = self._bucket_dir(bucket)
        info = self._read_meta(bucket_dir, file_info.name)
        if info is None or info.file_id != file_info.file_id:
            raise PermanentRemoteError(f"File not found: {file_info.name}")
        (bucket_dir / file_info.name).unlink(missing_ok=True)
        self._meta_path(bucket_dir, file_info.name).unlink()

