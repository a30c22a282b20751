"""SQLite-backed catalog of file fingerprints, sync pairs and sync jobs.

Uses stdlib sqlite3: every operation is a short local transaction, and all
write ordering relies on SQLite's own guarantees. Any ``sqlite3.Error`` is
re-raised as ``StorageError``.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from dirkeeper.errors import JobStateError, StorageError
from dirkeeper.schemas.catalog import FileRecord, JobStatus, SyncJob, SyncPair

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    path        TEXT NOT NULL UNIQUE,
    hash        TEXT NOT NULL,
    size        INTEGER NOT NULL,
    created_at  TEXT NOT NULL,
    modified_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_pairs (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    source_dir  TEXT NOT NULL,
    dest_dir    TEXT NOT NULL,
    UNIQUE (source_dir, dest_dir)
);

CREATE TABLE IF NOT EXISTS sync_jobs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    sync_pair_id  INTEGER NOT NULL REFERENCES sync_pairs (id),
    status        TEXT NOT NULL CHECK (status IN ('running', 'completed', 'failed')),
    started_at    TEXT NOT NULL,
    completed_at  TEXT
);

CREATE TABLE IF NOT EXISTS synced_files (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    sync_job_id  INTEGER NOT NULL REFERENCES sync_jobs (id),
    file_id      INTEGER NOT NULL REFERENCES files (id)
);
"""

_SELECT_PAIR = "SELECT id, source_dir, dest_dir FROM sync_pairs WHERE source_dir = ? AND dest_dir = ?"
_SELECT_PAIRS = "SELECT id, source_dir, dest_dir FROM sync_pairs ORDER BY id ASC"
_INSERT_PAIR = "INSERT INTO sync_pairs (source_dir, dest_dir) VALUES (?, ?)"

_INSERT_JOB = "INSERT INTO sync_jobs (sync_pair_id, status, started_at) VALUES (?, ?, ?)"
_SELECT_JOB = "SELECT * FROM sync_jobs WHERE id = ?"
_FINISH_JOB = """
UPDATE sync_jobs SET status = ?, completed_at = ? WHERE id = ? AND status = 'running'
"""

_SELECT_FILE_BY_PATH = "SELECT * FROM files WHERE path = ?"
_SELECT_FILE_ID = "SELECT id FROM files WHERE path = ?"
_INSERT_FILE = """
INSERT INTO files (path, hash, size, created_at, modified_at) VALUES (?, ?, ?, ?, ?)
"""
_UPSERT_FILE = """
INSERT INTO files (path, hash, size, created_at, modified_at) VALUES (?, ?, ?, ?, ?)
ON CONFLICT (path) DO UPDATE SET
    hash = excluded.hash,
    size = excluded.size,
    modified_at = excluded.modified_at
"""

_INSERT_SYNCED_FILE = "INSERT INTO synced_files (sync_job_id, file_id) VALUES (?, ?)"
_SELECT_JOB_FILES = """
SELECT f.* FROM files f
JOIN synced_files s ON s.file_id = f.id
WHERE s.sync_job_id = ?
ORDER BY s.id ASC
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        path=row["path"],
        hash=row["hash"],
        size=row["size"],
        created_at=datetime.fromisoformat(row["created_at"]),
        modified_at=datetime.fromisoformat(row["modified_at"]),
    )


def _row_to_pair(row: sqlite3.Row) -> SyncPair:
    return SyncPair(id=row["id"], source_dir=row["source_dir"], dest_dir=row["dest_dir"])


def _row_to_job(row: sqlite3.Row) -> SyncJob:
    return SyncJob(
        id=row["id"],
        sync_pair_id=row["sync_pair_id"],
        status=JobStatus(row["status"]),
        started_at=datetime.fromisoformat(row["started_at"]),
        completed_at=(
            datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
        ),
    )


class Catalog:
    """Durable record of known file content and sync history.

    Usage::

        with Catalog("/path/to/dirkeeper.db") as catalog:
            pair = catalog.get_or_create_pair("/src", "/dst")
            job_id = catalog.create_job(pair.id)
            ...
            catalog.set_job_status(job_id, JobStatus.COMPLETED)

    Raises:
        StorageError: If the database cannot be opened or the schema cannot
            be initialized.
    """

    def __init__(self, db_path: str | Path, init_script: str | Path | None = None) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        with self._storage("open"):
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"Cannot create catalog directory: {exc}") from exc
            self._conn = sqlite3.connect(str(self._db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(self._load_schema(init_script))
            self._conn.commit()

    @contextmanager
    def _storage(self, action: str) -> Iterator[None]:
        """Re-raise sqlite errors as StorageError, rolling back the open transaction."""
        try:
            yield
        except sqlite3.Error as exc:
            if self._conn is not None and self._conn.in_transaction:
                self._conn.rollback()
            raise StorageError(f"Catalog {action} failed: {exc}") from exc

    @staticmethod
    def _load_schema(init_script: str | Path | None) -> str:
        if init_script is None:
            return _SCHEMA
        try:
            return Path(init_script).read_text()
        except OSError as exc:
            raise StorageError(f"Cannot read schema script {init_script}: {exc}") from exc

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "Catalog":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Sync pairs
    # ------------------------------------------------------------------

    def find_pair(self, source_dir: str, dest_dir: str) -> SyncPair | None:
        """Look up a pair by its (source, destination) identity."""
        with self._storage("pair lookup"):
            row = self._conn.execute(_SELECT_PAIR, (source_dir, dest_dir)).fetchone()
        return _row_to_pair(row) if row else None

    def create_pair(self, source_dir: str, dest_dir: str) -> int:
        """Insert a new pair and return its ID.

        Raises StorageError if the pair already exists.
        """
        with self._storage("pair insert"):
            cursor = self._conn.execute(_INSERT_PAIR, (source_dir, dest_dir))
            self._conn.commit()
        logger.info("Created sync pair %d: %s -> %s", cursor.lastrowid, source_dir, dest_dir)
        return cursor.lastrowid

    def get_or_create_pair(self, source_dir: str, dest_dir: str) -> SyncPair:
        """Return the pair for (source, destination), creating it if needed.

        Two callers racing on a new pair both end up with the same row: the
        loser's insert hits the uniqueness constraint and re-reads.
        """
        existing = self.find_pair(source_dir, dest_dir)
        if existing is not None:
            return existing

        try:
            cursor = self._conn.execute(_INSERT_PAIR, (source_dir, dest_dir))
            self._conn.commit()
        except sqlite3.IntegrityError:
            self._conn.rollback()
            logger.debug("Pair %s -> %s created concurrently, re-reading", source_dir, dest_dir)
            existing = self.find_pair(source_dir, dest_dir)
            if existing is None:
                raise StorageError(
                    f"Pair {source_dir} -> {dest_dir} conflicted but could not be read back"
                ) from None
            return existing
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise StorageError(f"Catalog pair insert failed: {exc}") from exc

        logger.info("Created sync pair %d: %s -> %s", cursor.lastrowid, source_dir, dest_dir)
        return SyncPair(id=cursor.lastrowid, source_dir=source_dir, dest_dir=dest_dir)

    def list_pairs(self) -> list[SyncPair]:
        with self._storage("pair listing"):
            rows = self._conn.execute(_SELECT_PAIRS).fetchall()
        return [_row_to_pair(r) for r in rows]

    # ------------------------------------------------------------------
    # Sync jobs
    # ------------------------------------------------------------------

    def create_job(self, pair_id: int) -> int:
        """Start a new job for a pair in the ``running`` state."""
        with self._storage("job insert"):
            cursor = self._conn.execute(
                _INSERT_JOB, (pair_id, JobStatus.RUNNING.value, _now())
            )
            self._conn.commit()
        logger.debug("Started sync job %d for pair %d", cursor.lastrowid, pair_id)
        return cursor.lastrowid

    def get_job(self, job_id: int) -> SyncJob | None:
        with self._storage("job lookup"):
            row = self._conn.execute(_SELECT_JOB, (job_id,)).fetchone()
        return _row_to_job(row) if row else None

    def set_job_status(self, job_id: int, status: JobStatus | str) -> None:
        """Move a running job to a terminal status and stamp its completion time.

        Raises:
            JobStateError: If ``status`` is not terminal, or the job has
                already finished.
            StorageError: If the job does not exist.
        """
        target = JobStatus(status)
        if not JobStatus.RUNNING.can_transition_to(target):
            raise JobStateError(f"Cannot move sync job {job_id} to {target}")

        with self._storage("job update"):
            cursor = self._conn.execute(_FINISH_JOB, (target.value, _now(), job_id))
            self._conn.commit()

        if cursor.rowcount == 0:
            job = self.get_job(job_id)
            if job is None:
                raise StorageError(f"Sync job {job_id} not found")
            raise JobStateError(f"Sync job {job_id} is already {job.status}")
        logger.info("Sync job %d %s", job_id, target)

    def list_jobs(self, pair_id: int | None = None, limit: int = 50) -> list[SyncJob]:
        """List jobs, newest first, optionally for a single pair."""
        if pair_id is None:
            query = "SELECT * FROM sync_jobs ORDER BY id DESC LIMIT ?"
            params: tuple = (limit,)
        else:
            query = "SELECT * FROM sync_jobs WHERE sync_pair_id = ? ORDER BY id DESC LIMIT ?"
            params = (pair_id, limit)
        with self._storage("job listing"):
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_job(r) for r in rows]

    # ------------------------------------------------------------------
    # File records
    # ------------------------------------------------------------------

    def find_file_by_path(self, path: str) -> FileRecord | None:
        with self._storage("file lookup"):
            row = self._conn.execute(_SELECT_FILE_BY_PATH, (path,)).fetchone()
        return _row_to_file(row) if row else None

    def create_file_record(self, path: str, file_hash: str, size: int) -> int:
        """Insert a record for a path seen for the first time.

        Raises StorageError if the path is already recorded.
        """
        now = _now()
        with self._storage("file insert"):
            cursor = self._conn.execute(_INSERT_FILE, (path, file_hash, size, now, now))
            self._conn.commit()
        return cursor.lastrowid

    def upsert_file_record(self, path: str, file_hash: str, size: int) -> int:
        """Insert a record, or refresh hash and size of an existing one.

        The row ID of an existing path is kept, so earlier synced_files rows
        still point at it.
        """
        now = _now()
        with self._storage("file upsert"):
            self._conn.execute(_UPSERT_FILE, (path, file_hash, size, now, now))
            self._conn.commit()
            row = self._conn.execute(_SELECT_FILE_ID, (path,)).fetchone()
        logger.debug("Recorded %s (hash=%s…, %d bytes)", path, file_hash[:12], size)
        return row["id"]

    def count_files(self) -> int:
        with self._storage("file count"):
            row = self._conn.execute("SELECT COUNT(*) FROM files").fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Synced files
    # ------------------------------------------------------------------

    def link_synced_file(self, job_id: int, file_id: int) -> int:
        """Record that ``job_id`` copied ``file_id``."""
        with self._storage("synced file insert"):
            cursor = self._conn.execute(_INSERT_SYNCED_FILE, (job_id, file_id))
            self._conn.commit()
        return cursor.lastrowid

    def files_for_job(self, job_id: int) -> list[FileRecord]:
        """Return the file records a job copied, in copy order."""
        with self._storage("synced file listing"):
            rows = self._conn.execute(_SELECT_JOB_FILES, (job_id,)).fetchall()
        return [_row_to_file(r) for r in rows]
