"""Error taxonomy for listing and synchronization.

Every error carries the HTTP status a request layer should answer with, so
callers can map failures without keeping their own table.
"""


class DirkeeperError(Exception):
    """Base class for all dirkeeper errors."""

    http_status = 500


class InvalidPathError(DirkeeperError):
    """Raised when a path argument is empty or not usable."""

    http_status = 400


class PathNotFoundError(DirkeeperError):
    """Raised when a directory or file does not exist."""

    http_status = 404


class PermissionDeniedError(DirkeeperError):
    """Raised when the filesystem refuses access."""

    http_status = 403


class PatternInvalidError(DirkeeperError):
    """Raised when a regex filter cannot be compiled."""

    http_status = 400


class StorageError(DirkeeperError):
    """Raised when a catalog read or write fails."""


class JobStateError(StorageError):
    """Raised on a sync job status transition the state machine forbids."""


class CopyError(DirkeeperError):
    """Raised when reading, hashing, or copying a file fails."""


class ConflictError(DirkeeperError):
    """Raised when a sync pair is unknown and creation was not confirmed."""

    http_status = 409


class SameSourceDestinationError(DirkeeperError):
    """Raised when a sync targets its own source directory."""

    http_status = 400


class SyncFailedError(DirkeeperError):
    """Raised by ``SyncReport.raise_for_status`` for a failed job."""

    def __init__(self, report) -> None:
        super().__init__(f"Sync job {report.job_id} failed: {report.error}")
        self.report = report


def classify_os_error(exc: OSError, path: str) -> Exception:
    """Map a filesystem error onto the taxonomy.

    Missing paths and permission failures get their own classes, and a file
    given where a directory is required is an invalid path. Any other
    ``OSError`` is returned unchanged so the caller can re-raise it as is.
    """
    if isinstance(exc, NotADirectoryError):
        return InvalidPathError(f"Not a directory: {path}")
    if isinstance(exc, FileNotFoundError):
        return PathNotFoundError(f"Path not found: {path}")
    if isinstance(exc, PermissionError):
        return PermissionDeniedError(f"Permission denied: {path}")
    return exc
