"""Tests for the one-shot sync engine."""

import os
from unittest.mock import patch

import pytest

from dirkeeper.errors import SameSourceDestinationError, StorageError, SyncFailedError
from dirkeeper.explorer.filesystem import LocalFilesystem
from dirkeeper.schemas.catalog import JobStatus
from dirkeeper.sync.catalog import Catalog
from dirkeeper.sync.engine import normalize_dir, sync_unique_files
from dirkeeper.sync.hashing import compute_file_hash


@pytest.fixture
def sync_env(tmp_path, catalog: Catalog):
    """Source with one file, empty destination and a registered pair."""
    src = tmp_path / "src"
    dst = tmp_path / "dst"
    src.mkdir()
    dst.mkdir()
    (src / "a.txt").write_text("x")
    pair = catalog.get_or_create_pair(str(src), str(dst))
    return {"src": src, "dst": dst, "pair_id": pair.id, "catalog": catalog}


def _sync(env, fs=None):
    return sync_unique_files(
        env["catalog"], str(env["src"]), str(env["dst"]), env["pair_id"], fs=fs
    )


class FailingCopyFilesystem(LocalFilesystem):
    """Fails to copy the files named in ``broken``."""

    def __init__(self, *broken: str) -> None:
        self.broken = set(broken)

    def copy(self, src, dst):
        if os.path.basename(str(src)) in self.broken:
            raise OSError(28, "No space left on device", str(dst))
        return super().copy(src, dst)


# ------------------------------------------------------------------
# Happy path
# ------------------------------------------------------------------


class TestFirstSync:
    def test_copies_new_file(self, sync_env):
        report = _sync(sync_env)

        assert report.copied == ["a.txt"]
        assert report.status == JobStatus.COMPLETED
        assert report.ok
        assert (sync_env["dst"] / "a.txt").read_text() == "x"

    def test_records_provenance(self, sync_env):
        catalog = sync_env["catalog"]
        report = _sync(sync_env)

        assert catalog.count_files() == 1
        job = catalog.get_job(report.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.completed_at is not None
        synced = catalog.files_for_job(report.job_id)
        assert [f.path for f in synced] == [str(sync_env["src"] / "a.txt")]
        assert synced[0].hash == compute_file_hash(sync_env["src"] / "a.txt")
        assert synced[0].size == 1

    def test_result_follows_listing_order(self, sync_env):
        for name in ("c.txt", "b.txt", ".dotfile"):
            (sync_env["src"] / name).write_text(name)
        report = _sync(sync_env)
        assert report.copied == [".dotfile", "a.txt", "b.txt", "c.txt"]

    def test_only_immediate_files(self, sync_env):
        nested = sync_env["src"] / "sub"
        nested.mkdir()
        (nested / "deep.txt").write_text("deep")

        report = _sync(sync_env)

        assert report.copied == ["a.txt"]
        assert not (sync_env["dst"] / "sub").exists()

    def test_empty_source(self, sync_env):
        (sync_env["src"] / "a.txt").unlink()
        report = _sync(sync_env)
        assert report.copied == []
        assert report.status == JobStatus.COMPLETED

    def test_overwrites_destination_file(self, sync_env):
        (sync_env["dst"] / "a.txt").write_text("stale")
        _sync(sync_env)
        assert (sync_env["dst"] / "a.txt").read_text() == "x"


# ------------------------------------------------------------------
# Re-sync behaviour
# ------------------------------------------------------------------


class TestResync:
    def test_second_sync_copies_nothing(self, sync_env):
        first = _sync(sync_env)
        second = _sync(sync_env)

        assert first.copied == ["a.txt"]
        assert second.copied == []
        assert second.skipped == ["a.txt"]
        assert second.status == JobStatus.COMPLETED
        assert sync_env["catalog"].files_for_job(second.job_id) == []

    def test_changed_content_is_recopied(self, sync_env):
        catalog = sync_env["catalog"]
        _sync(sync_env)
        file_id = catalog.find_file_by_path(str(sync_env["src"] / "a.txt")).id

        (sync_env["src"] / "a.txt").write_text("y, but longer")
        report = _sync(sync_env)

        assert report.copied == ["a.txt"]
        assert (sync_env["dst"] / "a.txt").read_text() == "y, but longer"
        record = catalog.find_file_by_path(str(sync_env["src"] / "a.txt"))
        assert record.id == file_id
        assert record.size == len("y, but longer")
        assert catalog.count_files() == 1

    def test_touch_without_content_change_is_skipped(self, sync_env):
        _sync(sync_env)
        os.utime(sync_env["src"] / "a.txt", (0, 0))
        assert _sync(sync_env).copied == []

    def test_each_call_creates_a_job(self, sync_env):
        _sync(sync_env)
        _sync(sync_env)
        assert len(sync_env["catalog"].list_jobs(pair_id=sync_env["pair_id"])) == 2


# ------------------------------------------------------------------
# Same source and destination
# ------------------------------------------------------------------


class TestSameSourceDestination:
    def test_rejected_without_side_effects(self, sync_env):
        catalog = sync_env["catalog"]
        with pytest.raises(SameSourceDestinationError):
            sync_unique_files(
                catalog, str(sync_env["src"]), str(sync_env["src"]), sync_env["pair_id"]
            )
        assert catalog.list_jobs() == []
        assert catalog.count_files() == 0

    def test_trailing_separator_is_normalized(self, sync_env):
        with pytest.raises(SameSourceDestinationError):
            sync_unique_files(
                sync_env["catalog"],
                str(sync_env["src"]) + "/",
                str(sync_env["src"]),
                sync_env["pair_id"],
            )

    def test_normalize_dir(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert normalize_dir("/") == "/"
        assert normalize_dir(str(tmp_path) + "//") == str(tmp_path)
        assert normalize_dir("src/") == str(tmp_path / "src")

    def test_relative_source_matching_destination(self, sync_env, monkeypatch):
        monkeypatch.chdir(sync_env["src"].parent)
        with pytest.raises(SameSourceDestinationError):
            sync_unique_files(
                sync_env["catalog"], "src", str(sync_env["src"]), sync_env["pair_id"]
            )
        assert (sync_env["src"] / "a.txt").read_text() == "x"
        assert sync_env["catalog"].list_jobs() == []

    def test_same_inode_is_rejected(self, sync_env):
        class AliasingFilesystem(LocalFilesystem):
            """Reports the destination as the source, as a bind mount would."""

            def stat(self, path, *, follow_symlinks=True):
                if str(path) == str(sync_env["dst"]):
                    path = sync_env["src"]
                return super().stat(path, follow_symlinks=follow_symlinks)

        with pytest.raises(SameSourceDestinationError):
            _sync(sync_env, fs=AliasingFilesystem())
        assert sync_env["catalog"].list_jobs() == []


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------


class TestFailures:
    def test_copy_failure_keeps_partial_result(self, sync_env):
        (sync_env["src"] / "b.txt").write_text("b")
        (sync_env["src"] / "c.txt").write_text("c")

        report = _sync(sync_env, fs=FailingCopyFilesystem("b.txt"))

        assert report.status == JobStatus.FAILED
        assert report.copied == ["a.txt"]
        assert report.error_type == "CopyError"
        assert "No space left" in report.error
        assert (sync_env["dst"] / "a.txt").exists()
        assert not (sync_env["dst"] / "c.txt").exists()
        assert sync_env["catalog"].get_job(report.job_id).status == JobStatus.FAILED

    def test_failed_copy_is_not_recorded(self, sync_env):
        report = _sync(sync_env, fs=FailingCopyFilesystem("a.txt"))
        assert report.copied == []
        assert sync_env["catalog"].count_files() == 0

    def test_hash_failure(self, sync_env):
        class UnreadableFilesystem(LocalFilesystem):
            def open(self, path):
                raise PermissionError(13, "Permission denied", str(path))

        report = _sync(sync_env, fs=UnreadableFilesystem())

        assert report.status == JobStatus.FAILED
        assert report.error_type == "CopyError"

    def test_catalog_failure(self, sync_env):
        catalog = sync_env["catalog"]
        with patch.object(
            catalog, "link_synced_file", side_effect=StorageError("disk I/O error")
        ):
            report = _sync(sync_env)

        assert report.status == JobStatus.FAILED
        assert report.error_type == "StorageError"
        assert catalog.get_job(report.job_id).status == JobStatus.FAILED

    def test_missing_source_fails_job(self, sync_env):
        catalog = sync_env["catalog"]
        report = sync_unique_files(
            catalog,
            str(sync_env["src"] / "gone"),
            str(sync_env["dst"]),
            sync_env["pair_id"],
        )
        assert report.status == JobStatus.FAILED
        assert report.error_type == "PathNotFoundError"
        assert catalog.get_job(report.job_id).status == JobStatus.FAILED

    def test_raise_for_status(self, sync_env):
        report = _sync(sync_env, fs=FailingCopyFilesystem("a.txt"))
        with pytest.raises(SyncFailedError) as exc_info:
            report.raise_for_status()
        assert exc_info.value.report is report

    def test_raise_for_status_passes_completed(self, sync_env):
        report = _sync(sync_env)
        assert report.raise_for_status() is report

    def test_finalize_failure_reports_failed(self, sync_env):
        catalog = sync_env["catalog"]
        real_set_status = catalog.set_job_status

        def refuse_completion(job_id, status):
            if status == JobStatus.COMPLETED:
                raise StorageError("database is locked")
            return real_set_status(job_id, status)

        with patch.object(catalog, "set_job_status", side_effect=refuse_completion):
            report = _sync(sync_env)

        assert report.status == JobStatus.FAILED
        assert report.error_type == "StorageError"
        assert report.copied == ["a.txt"]
        assert catalog.get_job(report.job_id).status == JobStatus.FAILED

    def test_unwritable_job_status_still_returns_report(self, sync_env):
        catalog = sync_env["catalog"]
        with patch.object(
            catalog, "set_job_status", side_effect=StorageError("disk I/O error")
        ):
            report = _sync(sync_env)

        assert report.status == JobStatus.FAILED
        assert report.copied == ["a.txt"]


# ------------------------------------------------------------------
# Special files
# ------------------------------------------------------------------


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires os.mkfifo")
class TestSpecialFiles:
    def test_fifo_is_skipped(self, sync_env):
        os.mkfifo(sync_env["src"] / "pipe")

        report = _sync(sync_env)

        assert report.status == JobStatus.COMPLETED
        assert report.copied == ["a.txt"]
        assert not (sync_env["dst"] / "pipe").exists()
        assert sync_env["catalog"].count_files() == 1

    def test_symlink_to_fifo_is_skipped(self, sync_env, tmp_path):
        os.mkfifo(tmp_path / "pipe")
        (sync_env["src"] / "link").symlink_to(tmp_path / "pipe")

        assert _sync(sync_env).copied == ["a.txt"]
