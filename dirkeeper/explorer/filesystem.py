"""Filesystem capability shared by the explorer and the sync engine.

Both take a filesystem object explicitly instead of reaching for a global,
so tests can hand in a subclass that injects failures. Any object exposing
the same methods works.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import BinaryIO

from dirkeeper.errors import classify_os_error

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024  # 1 MB buffer for streamed copies


class LocalFilesystem:
    """Thin wrapper over the operating system's filesystem calls.

    Usage::

        fs = LocalFilesystem()
        for name in fs.read_dir("/data"):
            st = fs.stat(os.path.join("/data", name), follow_symlinks=False)
    """

    def open(self, path: str | Path) -> BinaryIO:
        """Open a file for binary reading."""
        return open(path, "rb")

    def create(self, path: str | Path) -> BinaryIO:
        """Create (or truncate) a file for binary writing."""
        return open(path, "wb")

    def stat(self, path: str | Path, *, follow_symlinks: bool = True) -> os.stat_result:
        return os.stat(path, follow_symlinks=follow_symlinks)

    def read_dir(self, path: str | Path) -> list[str]:
        """Return the names in a directory, sorted."""
        with os.scandir(path) as it:
            return sorted(entry.name for entry in it)

    def rename(self, src: str | Path, dst: str | Path) -> None:
        os.replace(src, dst)

    def remove(self, path: str | Path) -> None:
        os.remove(path)

    def copy(self, src: str | Path, dst: str | Path) -> int:
        """Stream ``src`` into ``dst``, overwriting it. Returns bytes written."""
        with self.open(src) as reader, self.create(dst) as writer:
            shutil.copyfileobj(reader, writer, COPY_CHUNK_SIZE)
            written = writer.tell()
        logger.debug("Copied %s -> %s (%d bytes)", src, dst, written)
        return written


def move_file(src: str | Path, dst: str | Path, fs: LocalFilesystem | None = None) -> None:
    """Move a file, classifying missing paths and permission failures."""
    fs = fs or LocalFilesystem()
    try:
        fs.rename(src, dst)
    except OSError as exc:
        err = classify_os_error(exc, str(src))
        if err is exc:
            raise
        raise err from exc
    logger.info("Moved %s -> %s", src, dst)


def delete_file(path: str | Path, fs: LocalFilesystem | None = None) -> None:
    """Delete a file, classifying missing paths and permission failures."""
    fs = fs or LocalFilesystem()
    try:
        fs.remove(path)
    except OSError as exc:
        err = classify_os_error(exc, str(path))
        if err is exc:
            raise
        raise err from exc
    logger.info("Deleted %s", path)
