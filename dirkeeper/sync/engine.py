"""One-shot synchronization of a source directory into a destination.

Only the immediate files of the source are considered. Each is hashed and
compared with the catalog: new or changed content is copied and recorded,
known content is skipped. The job is marked ``completed`` or ``failed`` at the
end; files already copied by a failed job stay in place.
"""

import logging
import os
import stat

from dirkeeper.errors import (
    CopyError,
    DirkeeperError,
    SameSourceDestinationError,
    StorageError,
)
from dirkeeper.explorer.filesystem import LocalFilesystem
from dirkeeper.explorer.lister import list_directory
from dirkeeper.schemas.catalog import JobStatus, SyncReport
from dirkeeper.sync.catalog import Catalog
from dirkeeper.sync.hashing import compute_file_hash

logger = logging.getLogger(__name__)


def normalize_dir(path: str) -> str:
    """Absolute, symlink-free form of a directory ('src/' -> '/cwd/src')."""
    return os.path.realpath(path)


def same_directory(a: str, b: str, fs: LocalFilesystem | None = None) -> bool:
    """True when both paths name one directory, including bind mounts."""
    if normalize_dir(a) == normalize_dir(b):
        return True
    fs = fs or LocalFilesystem()
    try:
        st_a, st_b = fs.stat(a), fs.stat(b)
    except OSError:
        return False
    return (st_a.st_dev, st_a.st_ino) == (st_b.st_dev, st_b.st_ino)


def _list_source(source_dir: str, fs: LocalFilesystem) -> list[tuple[str, str]]:
    """Return (name, path) for each regular file among the children of ``source_dir``.

    Symlinks are followed. Directories, FIFOs, sockets and devices are skipped.
    """
    children = []
    for entry in list_directory(source_dir, fs):
        if entry.is_dir:
            continue
        try:
            st = fs.stat(entry.path)
        except OSError as exc:
            logger.warning("Skipping unreadable source entry %s: %s", entry.path, exc)
            continue
        if not stat.S_ISREG(st.st_mode):
            if not stat.S_ISDIR(st.st_mode):
                logger.info("Skipping special file %s", entry.path)
            continue
        children.append((entry.name, entry.path))
    return children


def _hash(path: str, fs: LocalFilesystem) -> tuple[str, int]:
    try:
        return compute_file_hash(path, fs), fs.stat(path).st_size
    except OSError as exc:
        raise CopyError(f"Failed to hash {path}: {exc}") from exc


def _copy(src: str, dst: str, fs: LocalFilesystem) -> None:
    try:
        fs.copy(src, dst)
    except OSError as exc:
        raise CopyError(f"Failed to copy {src} -> {dst}: {exc}") from exc


def _fail_job(catalog: Catalog, report: SyncReport, exc: Exception) -> SyncReport:
    report.status = JobStatus.FAILED
    report.error = str(exc)
    report.error_type = type(exc).__name__
    try:
        catalog.set_job_status(report.job_id, JobStatus.FAILED)
    except StorageError:
        logger.exception("Sync job %d could not be marked failed", report.job_id)
    return report


def sync_unique_files(
    catalog: Catalog,
    source_dir: str,
    dest_dir: str,
    pair_id: int,
    fs: LocalFilesystem | None = None,
) -> SyncReport:
    """Copy the files of ``source_dir`` whose content the catalog does not know.

    Args:
        catalog: Catalog holding file fingerprints and job history.
        source_dir: Directory whose immediate files are synchronized.
        dest_dir: Directory receiving copies under the same base names.
        pair_id: ID of the sync pair this run belongs to.
        fs: Filesystem to operate on.

    Returns:
        A SyncReport. On failure its status is ``failed`` and ``copied``
        holds the files written before the error.

    Raises:
        SameSourceDestinationError: Source and destination are the same
            directory. Nothing is written and no job is created.
        StorageError: The job itself could not be created.
    """
    fs = fs or LocalFilesystem()
    source_dir = normalize_dir(source_dir)
    dest_dir = normalize_dir(dest_dir)

    if same_directory(source_dir, dest_dir, fs):
        raise SameSourceDestinationError(
            f"Source and destination cannot be the same: {source_dir}"
        )

    job_id = catalog.create_job(pair_id)
    report = SyncReport(
        job_id=job_id,
        pair_id=pair_id,
        source_dir=source_dir,
        dest_dir=dest_dir,
        status=JobStatus.RUNNING,
    )
    logger.info("Sync job %d: %s -> %s", job_id, source_dir, dest_dir)

    try:
        for name, src_path in _list_source(source_dir, fs):
            file_hash, size = _hash(src_path, fs)

            existing = catalog.find_file_by_path(src_path)
            if existing is not None and existing.hash == file_hash:
                logger.debug("Unchanged, skipping %s", name)
                report.skipped.append(name)
                continue

            _copy(src_path, os.path.join(dest_dir, name), fs)
            file_id = catalog.upsert_file_record(src_path, file_hash, size)
            catalog.link_synced_file(job_id, file_id)
            report.copied.append(name)
            logger.info("Copied %s (hash=%s…)", name, file_hash[:12])
    except (DirkeeperError, OSError) as exc:
        logger.exception("Sync job %d failed after %d file(s)", job_id, len(report.copied))
        return _fail_job(catalog, report, exc)

    try:
        catalog.set_job_status(job_id, JobStatus.COMPLETED)
    except StorageError as exc:
        logger.exception("Sync job %d could not be marked completed", job_id)
        return _fail_job(catalog, report, exc)
    report.status = JobStatus.COMPLETED
    logger.info(
        "Sync job %d completed: %d copied, %d unchanged",
        job_id,
        len(report.copied),
        len(report.skipped),
    )
    return report
