"""Schemas for the file catalog and sync job bookkeeping."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from dirkeeper.errors import SyncFailedError


class JobStatus(StrEnum):
    """Lifecycle state of a sync job.

    ``running`` moves exactly once to ``completed`` or ``failed``; both are
    terminal.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING

    def can_transition_to(self, target: "JobStatus") -> bool:
        return self is JobStatus.RUNNING and target.is_terminal


class FileRecord(BaseModel):
    """Fingerprint of the content last copied from a source path."""

    id: int
    path: str
    hash: str = Field(description="SHA-256 hex digest of the file content")
    size: int = Field(ge=0)
    created_at: datetime
    modified_at: datetime


class SyncPair(BaseModel):
    """An authorized source → destination relationship."""

    id: int
    source_dir: str
    dest_dir: str


class SyncJob(BaseModel):
    """One execution of the sync engine against a pair."""

    id: int
    sync_pair_id: int
    status: JobStatus
    started_at: datetime
    completed_at: datetime | None = None


class SyncedFile(BaseModel):
    """Join row recording that a job copied a file."""

    id: int
    sync_job_id: int
    file_id: int


class SyncReport(BaseModel):
    """Outcome of a single sync call.

    ``copied`` is meaningful even when the job failed: it lists the files
    written before the failure, in source listing order.
    """

    job_id: int
    pair_id: int
    source_dir: str
    dest_dir: str
    status: JobStatus
    copied: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    error: str = Field(default="", description="Error details if status is failed")
    error_type: str = Field(default="", description="Error class name if status is failed")

    @property
    def ok(self) -> bool:
        return self.status == JobStatus.COMPLETED

    def raise_for_status(self) -> "SyncReport":
        """Raise ``SyncFailedError`` if the job failed, else return self."""
        if self.status == JobStatus.FAILED:
            raise SyncFailedError(self)
        return self
