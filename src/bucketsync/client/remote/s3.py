"""S3-compatible remote store (AWS, OVH, MinIO, ...)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from bucketsync.client.remote.base import (
    AuthenticationError,
    Bucket,
    CallbackRemoteStore,
    FileInfo,
    PermanentRemoteError,
    ProgressCallback,
    RemoteError,
    TransientRemoteError,
)

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "InvalidToken",
        "SignatureDoesNotMatch",
    }
)
TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalError",
        "RequestTimeout",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
    }
)


def translate_error(error: Exception) -> RemoteError:
    """Map a boto3/botocore exception to a remote error kind."""
    if isinstance(error, NoCredentialsError | PartialCredentialsError):
        return AuthenticationError(str(error))

    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in AUTH_ERROR_CODES:
            return AuthenticationError(f"{code}: {error}")
        if code in TRANSIENT_ERROR_CODES or status >= 500:
            return TransientRemoteError(f"{code}: {error}")
        return PermanentRemoteError(f"{code}: {error}")

    if isinstance(error, S3UploadFailedError):
        if any(code in str(error) for code in AUTH_ERROR_CODES):
            return AuthenticationError(str(error))
        return PermanentRemoteError(str(error))

    if isinstance(error, BotoConnectionError | HTTPClientError):
        return TransientRemoteError(str(error))

    return PermanentRemoteError(str(error))


@contextmanager
def _translated() -> Iterator[None]:
    try:
        yield
    except (BotoCoreError, ClientError, S3UploadFailedError) as e:
        raise translate_error(e) from e


class _ProgressAdapter:
    """Turns boto3 byte-count callbacks into (current, total) progress."""

    def __init__(self, total: int, on_progress: ProgressCallback | None) -> None:
        self._total = total
        self._current = 0
        self._on_progress = on_progress

    def __call__(self, bytes_amount: int) -> None:
        self._current += bytes_amount
        if self._on_progress:
            self._on_progress(self._current, self._total)


class S3RemoteStore(CallbackRemoteStore):
    """Remote store backed by S3 buckets.

    Object keys are the file names; the ETag is used as the version marker.
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
        max_workers: int = 4,
    ) -> None:
        """Initialize the S3 client.

        Args:
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
            max_workers: Maximum concurrent operations.
        """
        super().__init__(max_workers=max_workers)
        self._endpoint_url = endpoint_url
        self._region = region
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @property
    def location(self) -> str:
        """Return the S3 endpoint."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}"
        return f"S3: {self._region}"

    def _file_info(self, key: str, size: int, etag: str, last_modified: Any) -> FileInfo:
        return FileInfo(
            file_id=key,
            name=key,
            size=size,
            hash=etag.strip('"'),
            created=last_modified.timestamp() if last_modified else None,
        )

    def _do_get_buckets(self) -> list[Bucket]:
        with _translated():
            response = self._client.list_buckets()
        return [
            Bucket(bucket_id=item["Name"], name=item["Name"])
            for item in response.get("Buckets", [])
        ]

    def _do_create_bucket(self, name: str) -> Bucket:
        kwargs: dict[str, Any] = {"Bucket": name}
        if self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        with _translated():
            self._client.create_bucket(**kwargs)
        logger.debug("Created S3 bucket %s", name)
        return Bucket(bucket_id=name, name=name)

    def _do_list_files(self, bucket: Bucket) -> list[FileInfo]:
        files: list[FileInfo] = []
        with _translated():
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket.bucket_id):
                for item in page.get("Contents", []):
                    files.append(
                        self._file_info(
                            item["Key"], item["Size"], item["ETag"], item.get("LastModified")
                        )
                    )
        return files

    def _head(self, bucket: Bucket, name: str) -> FileInfo:
        with _translated():
            head = self._client.head_object(Bucket=bucket.bucket_id, Key=name)
        return self._file_info(
            name, head["ContentLength"], head["ETag"], head.get("LastModified")
        )

    def _do_upload_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None,
    ) -> FileInfo:
        callback = _ProgressAdapter(Path(local_path).stat().st_size, on_progress)
        with _translated():
            self._client.upload_file(
                str(local_path), bucket.bucket_id, name, Callback=callback
            )
        return self._head(bucket, name)

    def _do_download_file(
        self,
        bucket: Bucket,
        name: str,
        local_path: Path,
        on_progress: ProgressCallback | None,
    ) -> None:
        info = self._head(bucket, name)
        callback: Callable[[int], None] = _ProgressAdapter(info.size, on_progress)
        with _translated():
            self._client.download_file(
                bucket.bucket_id, name, str(local_path), Callback=callback
            )

    def _do_delete_file(self, bucket: Bucket, file_info: FileInfo) -> None:
        with _translated():
            self._client.delete_object(Bucket=bucket.bucket_id, Key=file_info.name)
