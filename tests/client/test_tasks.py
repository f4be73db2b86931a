"""Tests for sync tasks."""

from __future__ import annotations

import logging
import time
from unittest.mock import MagicMock

import pytest

from bucketsync.client.remote import PermanentRemoteError
from bucketsync.client.sync.context import SyncContext
from bucketsync.client.sync.executor import TaskExecutor
from bucketsync.client.sync.reconcile import observe_local
from bucketsync.client.sync.tasks import (
    CheckStateTask,
    DeleteCloudTask,
    DeleteLocalTask,
    DownloadTask,
    LocalEventTask,
    UploadTask,
    task_for_record,
)
from bucketsync.client.sync.tasks.base import TransferProgress, store_decision
from bucketsync.core.types import CloudData, LocalData, SyncRecord, SyncState


def _pending_upload(ctx: SyncContext, name: str, cloud: CloudData | None = None) -> SyncRecord:
    record = SyncRecord(
        name=name,
        state=SyncState.FOR_UPLOAD,
        local_data=observe_local(ctx.local_path(name)),
        cloud_data=cloud,
    )
    ctx.store.upsert(record)
    ctx.store.commit()
    return record


def _pending_download(ctx: SyncContext, name: str, cloud: CloudData) -> SyncRecord:
    record = SyncRecord(name=name, state=SyncState.FOR_DOWNLOAD, cloud_data=cloud)
    ctx.store.upsert(record)
    ctx.store.commit()
    return record


class TestTaskForRecord:
    """Tests for mapping records to tasks."""

    @pytest.mark.parametrize(
        ("state", "task_class"),
        [
            (SyncState.FOR_UPLOAD, UploadTask),
            (SyncState.FOR_DOWNLOAD, DownloadTask),
            (SyncState.FOR_LOCAL_DELETE, DeleteLocalTask),
            (SyncState.FOR_CLOUD_DELETE, DeleteCloudTask),
        ],
    )
    def test_action_states(self, state: SyncState, task_class: type) -> None:
        """Pending states map to their task."""
        task = task_for_record(SyncRecord(name="a.txt", state=state))
        assert isinstance(task, task_class)
        assert task.key == "a.txt"

    @pytest.mark.parametrize(
        "state", [SyncState.SYNCED, SyncState.CONFLICT, SyncState.UPLOAD_FAILED]
    )
    def test_idle_states(self, state: SyncState) -> None:
        """Settled and attention states need no task."""
        assert task_for_record(SyncRecord(name="a.txt", state=state)) is None

    def test_no_record(self) -> None:
        assert task_for_record(None) is None


class TestStoreDecision:
    """Tests for persisting derived records."""

    def test_unchanged(self, ctx: SyncContext) -> None:
        """Equal records are not rewritten."""
        record = SyncRecord(name="a.txt", state=SyncState.FOR_UPLOAD, local_data=LocalData(1, 1))
        assert store_decision(ctx.store, "a.txt", record, record) is False

    def test_removed(self, ctx: SyncContext) -> None:
        """A None decision removes the record."""
        record = SyncRecord(name="a.txt", state=SyncState.FOR_UPLOAD, local_data=LocalData(1, 1))
        ctx.store.upsert(record)

        assert store_decision(ctx.store, "a.txt", record, None) is True
        assert ctx.store.get("a.txt") is None
        assert store_decision(ctx.store, "a.txt", None, None) is False


class TestUploadTask:
    """Tests for UploadTask."""

    def test_upload(self, ctx: SyncContext, write_file) -> None:
        """A pending upload ends SYNCED with the remote id."""
        write_file(ctx.local_path("a.txt"), "hello")
        _pending_upload(ctx, "a.txt")

        assert UploadTask("a.txt").execute(ctx) is None

        record = ctx.store.get("a.txt")
        info = ctx.remote.find_file(ctx.bucket, "a.txt")
        assert record.state == SyncState.SYNCED
        assert record.local_data.size == 5
        assert info is not None
        assert record.cloud_data.file_id == info.file_id

    def test_reports_progress(self, ctx: SyncContext, write_file, caplog) -> None:
        """Upload progress is logged up to completion."""
        caplog.set_level(logging.DEBUG, logger="bucketsync.client.sync.tasks.base")
        write_file(ctx.local_path("a.txt"), "hello")
        _pending_upload(ctx, "a.txt")

        UploadTask("a.txt").execute(ctx)

        messages = [r.getMessage() for r in caplog.records]
        assert "Uploading a.txt: 100% (5/5 bytes)" in messages

    def test_skipped_without_pending_record(self, ctx: SyncContext, write_file) -> None:
        """Nothing happens when the record is not FOR_UPLOAD."""
        write_file(ctx.local_path("a.txt"), "hello")

        assert UploadTask("a.txt").execute(ctx) is None
        assert ctx.remote.list_files(ctx.bucket) == []

    def test_local_file_vanished(self, ctx: SyncContext, write_file) -> None:
        """A deleted source turns into a local event."""
        path = write_file(ctx.local_path("a.txt"), "hello")
        _pending_upload(ctx, "a.txt")
        path.unlink()

        follow_up = UploadTask("a.txt").execute(ctx)

        assert follow_up == LocalEventTask("a.txt", "deleted")
        assert follow_up.execute(ctx) is None
        assert ctx.store.get("a.txt") is None

    def test_adopts_identical_remote_copy(
        self, ctx: SyncContext, write_file, upload_remote
    ) -> None:
        """An upload that already reached the remote is not repeated."""
        write_file(ctx.local_path("a.txt"), "hello")
        info = upload_remote("a.txt", "hello")
        _pending_upload(ctx, "a.txt")

        UploadTask("a.txt").execute(ctx)

        record = ctx.store.get("a.txt")
        assert record.state == SyncState.SYNCED
        assert record.cloud_data.file_id == info.file_id

    def test_replaces_stale_copy(self, ctx: SyncContext, write_file, upload_remote) -> None:
        """The copy from the last sync is replaced."""
        old = upload_remote("a.txt", "hello")
        write_file(ctx.local_path("a.txt"), "hello world")
        _pending_upload(ctx, "a.txt", CloudData.from_file_info(old))

        UploadTask("a.txt").execute(ctx)

        info = ctx.remote.find_file(ctx.bucket, "a.txt")
        assert info.file_id != old.file_id
        assert info.size == 11
        assert ctx.store.get("a.txt").cloud_data.file_id == info.file_id

    def test_conflict_with_newer_remote(
        self, ctx: SyncContext, write_file, upload_remote
    ) -> None:
        """An unknown remote copy goes through the conflict policy."""
        write_file(ctx.local_path("a.txt"), "mine!", mtime=100.0)
        upload_remote("a.txt", "their")
        _pending_upload(ctx, "a.txt")

        follow_up = UploadTask("a.txt").execute(ctx)

        assert follow_up == DownloadTask("a.txt")
        assert ctx.store.get("a.txt").state == SyncState.FOR_DOWNLOAD

        follow_up.execute(ctx)
        assert ctx.local_path("a.txt").read_text() == "their"
        assert ctx.store.get("a.txt").state == SyncState.SYNCED

    def test_remote_failure(self, ctx: SyncContext, write_file) -> None:
        """A failed upload is recorded as UPLOAD_FAILED."""
        write_file(ctx.local_path("a.txt"), "hello")
        _pending_upload(ctx, "a.txt")
        ctx.remote = MagicMock()
        ctx.remote.find_file.return_value = None
        ctx.remote.upload_file.side_effect = PermanentRemoteError("quota exceeded")

        assert UploadTask("a.txt").execute(ctx) is None

        record = ctx.store.get("a.txt")
        assert record.state == SyncState.UPLOAD_FAILED
        assert record.local_data.size == 5


class TestDownloadTask:
    """Tests for DownloadTask."""

    def test_download(self, ctx: SyncContext, upload_remote) -> None:
        """A pending download writes the file and ends SYNCED."""
        info = upload_remote("a.txt", "hello")
        _pending_download(ctx, "a.txt", CloudData.from_file_info(info))

        assert DownloadTask("a.txt").execute(ctx) is None

        path = ctx.local_path("a.txt")
        record = ctx.store.get("a.txt")
        assert path.read_text() == "hello"
        assert record.state == SyncState.SYNCED
        assert record.local_data == observe_local(path)
        assert not path.with_name("a.txt.bsync-part").exists()

    def test_reports_progress(self, ctx: SyncContext, upload_remote, caplog) -> None:
        """Download progress is logged up to completion."""
        caplog.set_level(logging.DEBUG, logger="bucketsync.client.sync.tasks.base")
        info = upload_remote("a.txt", "hello")
        _pending_download(ctx, "a.txt", CloudData.from_file_info(info))

        DownloadTask("a.txt").execute(ctx)

        messages = [r.getMessage() for r in caplog.records]
        assert "Downloading a.txt: 100% (5/5 bytes)" in messages

    def test_local_edit_before_download(
        self, ctx: SyncContext, write_file, upload_remote
    ) -> None:
        """A newer local copy wins over the pending download."""
        info = upload_remote("a.txt", "hello")
        _pending_download(ctx, "a.txt", CloudData.from_file_info(info))
        write_file(ctx.local_path("a.txt"), "mine!", mtime=time.time() + 1000)

        follow_up = DownloadTask("a.txt").execute(ctx)

        assert follow_up == UploadTask("a.txt")
        assert ctx.local_path("a.txt").read_text() == "mine!"
        assert ctx.store.get("a.txt").state == SyncState.FOR_UPLOAD

    def test_identical_local_copy(self, ctx: SyncContext, write_file, upload_remote) -> None:
        """A local copy with the same bytes is adopted without downloading."""
        info = upload_remote("a.txt", "hello")
        _pending_download(ctx, "a.txt", CloudData.from_file_info(info))
        write_file(ctx.local_path("a.txt"), "hello")

        assert DownloadTask("a.txt").execute(ctx) is None
        assert ctx.store.get("a.txt").state == SyncState.SYNCED

    def test_remote_file_missing(self, ctx: SyncContext) -> None:
        """A vanished remote copy is a failed download."""
        _pending_download(ctx, "a.txt", CloudData("gone", 5, "x"))

        assert DownloadTask("a.txt").execute(ctx) is None

        assert ctx.store.get("a.txt").state == SyncState.DOWNLOAD_FAILED
        assert not ctx.local_path("a.txt").exists()
        assert not ctx.local_path("a.txt.bsync-part").exists()


class TestDeleteTasks:
    """Tests for DeleteCloudTask and DeleteLocalTask."""

    def test_delete_cloud(self, ctx: SyncContext, upload_remote) -> None:
        """The remote copy is deleted and the record removed."""
        info = upload_remote("a.txt", "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_CLOUD_DELETE,
                local_data=LocalData(100.0, 5),
                cloud_data=CloudData.from_file_info(info),
            )
        )

        assert DeleteCloudTask("a.txt").execute(ctx) is None

        assert ctx.remote.find_file(ctx.bucket, "a.txt") is None
        assert ctx.store.get("a.txt") is None

    def test_delete_cloud_changed_remotely(self, ctx: SyncContext, upload_remote) -> None:
        """A remote copy changed since the last sync is downloaded instead."""
        info = upload_remote("a.txt", "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_CLOUD_DELETE,
                local_data=LocalData(100.0, 5),
                cloud_data=CloudData("older-id", 5, "x"),
            )
        )

        follow_up = DeleteCloudTask("a.txt").execute(ctx)

        assert follow_up == DownloadTask("a.txt")
        record = ctx.store.get("a.txt")
        assert record.state == SyncState.FOR_DOWNLOAD
        assert record.cloud_data.file_id == info.file_id
        assert ctx.remote.find_file(ctx.bucket, "a.txt") is not None

    def test_delete_cloud_file_reappeared(
        self, ctx: SyncContext, write_file, upload_remote
    ) -> None:
        """A file restored locally is not deleted remotely."""
        info = upload_remote("a.txt", "hello")
        write_file(ctx.local_path("a.txt"), "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_CLOUD_DELETE,
                local_data=LocalData(100.0, 5),
                cloud_data=CloudData.from_file_info(info),
            )
        )

        assert DeleteCloudTask("a.txt").execute(ctx) == LocalEventTask("a.txt")
        assert ctx.remote.find_file(ctx.bucket, "a.txt") is not None

    def test_delete_cloud_failure_keeps_state(self, ctx: SyncContext) -> None:
        """A failed remote delete leaves the record pending."""
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_CLOUD_DELETE,
                local_data=LocalData(100.0, 5),
                cloud_data=CloudData("id-1", 5, "x"),
            )
        )
        ctx.remote = MagicMock()
        ctx.remote.find_file.side_effect = PermanentRemoteError("denied")

        assert DeleteCloudTask("a.txt").execute(ctx) is None
        assert ctx.store.get("a.txt").state == SyncState.FOR_CLOUD_DELETE

    def test_delete_local(self, ctx: SyncContext, write_file) -> None:
        """The local copy is deleted and the record removed."""
        path = write_file(ctx.local_path("a.txt"), "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_LOCAL_DELETE,
                local_data=observe_local(path),
                cloud_data=CloudData("id-1", 5, "x"),
            )
        )

        assert DeleteLocalTask("a.txt").execute(ctx) is None

        assert not path.exists()
        assert ctx.store.get("a.txt") is None

    def test_delete_local_keeps_file_still_on_remote(
        self, ctx: SyncContext, write_file, upload_remote
    ) -> None:
        """A remote copy found before unlinking keeps the local file."""
        path = write_file(ctx.local_path("a.txt"), "hello")
        info = upload_remote("a.txt", "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_LOCAL_DELETE,
                local_data=observe_local(path),
                cloud_data=CloudData.from_file_info(info),
            )
        )

        assert DeleteLocalTask("a.txt").execute(ctx) is None

        record = ctx.store.get("a.txt")
        assert path.read_text() == "hello"
        assert record.state == SyncState.SYNCED
        assert record.cloud_data.file_id == info.file_id

    def test_delete_local_unconfirmed_keeps_state(self, ctx: SyncContext, write_file) -> None:
        """The local copy stays when the remote cannot be reached."""
        path = write_file(ctx.local_path("a.txt"), "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_LOCAL_DELETE,
                local_data=observe_local(path),
                cloud_data=CloudData("id-1", 5, "x"),
            )
        )
        ctx.remote = MagicMock()
        ctx.remote.find_file.side_effect = PermanentRemoteError("denied")

        assert DeleteLocalTask("a.txt").execute(ctx) is None

        assert path.exists()
        assert ctx.store.get("a.txt").state == SyncState.FOR_LOCAL_DELETE

    def test_delete_local_keeps_modified_file(self, ctx: SyncContext, write_file) -> None:
        """A local copy changed after the remote deletion is kept."""
        path = write_file(ctx.local_path("a.txt"), "hello again")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.FOR_LOCAL_DELETE,
                local_data=LocalData(100.0, 5),
                cloud_data=CloudData("id-1", 5, "x"),
            )
        )

        follow_up = DeleteLocalTask("a.txt").execute(ctx)

        assert follow_up == LocalEventTask("a.txt")
        assert path.exists()

        upload = follow_up.execute(ctx)
        assert upload == UploadTask("a.txt")
        assert ctx.store.get("a.txt").state == SyncState.FOR_UPLOAD


class TestLocalEventTask:
    """Tests for LocalEventTask."""

    def test_new_file(self, ctx: SyncContext, write_file) -> None:
        """A new local file becomes a committed FOR_UPLOAD record."""
        write_file(ctx.local_path("a.txt"), "hello")

        follow_up = LocalEventTask("a.txt", "created").execute(ctx)

        assert follow_up == UploadTask("a.txt")
        assert ctx.store.get("a.txt").state == SyncState.FOR_UPLOAD

    def test_deleted_unknown_file(self, ctx: SyncContext) -> None:
        """Deleting a never-synced file leaves no record."""
        assert LocalEventTask("a.txt", "deleted").execute(ctx) is None
        assert len(ctx.store) == 0

    def test_deleted_synced_file(self, ctx: SyncContext, upload_remote) -> None:
        """Deleting a synced file schedules the remote delete."""
        info = upload_remote("a.txt", "hello")
        ctx.store.upsert(
            SyncRecord(
                name="a.txt",
                state=SyncState.SYNCED,
                local_data=LocalData(100.0, 5),
                cloud_data=CloudData.from_file_info(info),
            )
        )

        follow_up = LocalEventTask("a.txt", "deleted").execute(ctx)

        assert follow_up == DeleteCloudTask("a.txt")
        assert ctx.store.get("a.txt").state == SyncState.FOR_CLOUD_DELETE


class TestCheckStateTask:
    """Tests for the reconciliation task."""

    def test_discovers_both_sides(self, ctx: SyncContext, write_file, upload_remote) -> None:
        """New names on either side get records and tasks."""
        write_file(ctx.local_path("a.txt"), "local")
        upload_remote("b.txt", "remote")

        task = CheckStateTask()
        assert task.execute(ctx) is None

        assert task.enqueued == 2
        assert ctx.queue.pending() == [UploadTask("a.txt"), DownloadTask("b.txt")]
        assert ctx.store.get("a.txt").state == SyncState.FOR_UPLOAD
        assert ctx.store.get("b.txt").state == SyncState.FOR_DOWNLOAD

    def test_skips_busy_names(self, ctx: SyncContext, write_file) -> None:
        """Names with a running task are left alone."""
        write_file(ctx.local_path("a.txt"), "local")
        ctx.queue.claim("a.txt")

        task = CheckStateTask()
        task.execute(ctx)

        assert task.enqueued == 0
        assert ctx.store.get("a.txt") is None

    def test_ignored_names(self, ctx: SyncContext, write_file, upload_remote) -> None:
        """Ignored and partial files are never synchronized."""
        write_file(ctx.local_path(".DS_Store"), "x")
        write_file(ctx.local_path("a.txt.bsync-part"), "x")
        (ctx.config.sync_dir / "folder").mkdir()
        upload_remote("notes.tmp", "x")

        task = CheckStateTask()
        task.execute(ctx)

        assert task.enqueued == 0
        assert len(ctx.store) == 0

    def test_remote_listing_fails(self, ctx: SyncContext, write_file) -> None:
        """An unreachable remote skips the pass."""
        write_file(ctx.local_path("a.txt"), "local")
        ctx.remote = MagicMock()
        ctx.remote.list_files.side_effect = PermanentRemoteError("offline")

        task = CheckStateTask()
        assert task.execute(ctx) is None
        assert len(ctx.store) == 0

    def test_removes_records_missing_everywhere(self, ctx: SyncContext) -> None:
        """Stale records with no copy left are dropped."""
        ctx.store.upsert(
            SyncRecord(name="a.txt", state=SyncState.FOR_UPLOAD, local_data=LocalData(1, 1))
        )
        ctx.store.commit()

        CheckStateTask().execute(ctx)

        assert ctx.store.get("a.txt") is None

    def test_listing_predates_finished_upload(
        self, ctx: SyncContext, write_file, monkeypatch
    ) -> None:
        """An upload finishing after the listing does not delete the file."""
        path = write_file(ctx.local_path("a.txt"), "hello")
        _pending_upload(ctx, "a.txt")
        list_files = ctx.remote.list_files
        listed: list[str] = []

        def list_then_upload(bucket):
            files = list_files(bucket)
            if not listed:
                listed.append(bucket.name)
                UploadTask("a.txt").execute(ctx)
            return files

        monkeypatch.setattr(ctx.remote, "list_files", list_then_upload)

        task = CheckStateTask()
        task.execute(ctx)
        TaskExecutor(ctx).run_pending()

        assert task.enqueued == 0
        assert path.read_text() == "hello"
        assert ctx.store.get("a.txt").state == SyncState.SYNCED
        assert ctx.remote.find_file(ctx.bucket, "a.txt") is not None


class TestTransferProgress:
    """Tests for transfer progress reporting."""

    def test_throttled(self, caplog) -> None:
        """Only steps of the configured size and the completion are logged."""
        caplog.set_level(logging.DEBUG, logger="bucketsync.client.sync.tasks.base")
        progress = TransferProgress("Uploading", "a.txt", step=25)

        for current in range(1, 101):
            progress(current, 100)

        percents = [r.args[2] for r in caplog.records if r.getMessage().startswith("Uploading")]
        assert percents == [1, 26, 51, 76, 100]
        assert progress.percent == 100

    def test_completion_logged_once(self, caplog) -> None:
        caplog.set_level(logging.DEBUG, logger="bucketsync.client.sync.tasks.base")
        progress = TransferProgress("Downloading", "a.txt")

        progress(10, 10)
        progress(10, 10)

        assert len(caplog.records) == 1
