"""Directory explorer: bounded-depth listing with hidden/glob/regex filters.

Filter order per entry:
  1. hidden names (leading ".") are dropped unless ``show_hidden``
  2. names matching an ``exclude`` glob are dropped; excluded directories
     are not descended
  3. files must match an ``include`` glob (when any) and ``regex_pattern``
     (when set)

Directories that survive 1-2 are always descended within the depth bound, but
are left out of the result whenever an include or regex filter is active.
"""

import fnmatch
import logging
import os
import re
import stat
from datetime import UTC, datetime
from pathlib import Path

from dirkeeper.errors import InvalidPathError, PatternInvalidError, classify_os_error
from dirkeeper.explorer.filesystem import LocalFilesystem
from dirkeeper.explorer.mime import detect_mime_type
from dirkeeper.schemas.files import FileEntry, FileInfo, ListOptions

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."


def _compile_regex(pattern: str | None) -> re.Pattern | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise PatternInvalidError(f"Invalid regex pattern {pattern!r}: {exc}") from exc


def _matches_any(name: str, patterns: list[str]) -> bool:
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def should_include(
    name: str,
    is_dir: bool,
    options: ListOptions,
    regex: re.Pattern | None = None,
) -> bool:
    """Apply the hidden, exclude, include and regex filters to one entry."""
    if not options.show_hidden and name.startswith(HIDDEN_PREFIX):
        return False
    if _matches_any(name, options.exclude):
        return False
    if is_dir:
        return True
    if options.include and not _matches_any(name, options.include):
        return False
    if regex is not None and not regex.search(name):
        return False
    return True


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


def _create_time(st: os.stat_result) -> datetime:
    """Birth time where the platform records it, else modification time."""
    birthtime = getattr(st, "st_birthtime", None)
    if birthtime is None:
        return _timestamp(st.st_mtime)
    return _timestamp(birthtime)


def build_file_info(
    path: str, name: str, st: os.stat_result, fs: LocalFilesystem
) -> FileInfo:
    """Materialize a FileInfo; MIME detection failures leave the type empty.

    Only regular files get a MIME type. Opening a FIFO or device to sniff it
    could block, so special files are listed without one.
    """
    is_dir = stat.S_ISDIR(st.st_mode)
    mime_type = None
    if stat.S_ISREG(st.st_mode):
        try:
            mime_type = detect_mime_type(path, fs)
        except OSError as exc:
            logger.debug("MIME detection failed for %s: %s", path, exc)

    return FileInfo(
        name=name,
        path=path,
        size=st.st_size,
        is_directory=is_dir,
        mod_time=_timestamp(st.st_mtime),
        create_time=_create_time(st),
        permissions=stat.filemode(st.st_mode),
        mime_type=mime_type,
    )


def _read_root(root: str | Path | None, fs: LocalFilesystem) -> tuple[str, list[str]]:
    """Validate and read the root directory, classifying failures."""
    if root is None or not str(root).strip():
        raise InvalidPathError("Path must not be empty")

    root_str = os.path.normpath(str(root))
    try:
        return root_str, fs.read_dir(root_str)
    except OSError as exc:
        err = classify_os_error(exc, root_str)
        if err is exc:
            raise
        raise err from exc


def list_files(
    root: str | Path,
    options: ListOptions | None = None,
    fs: LocalFilesystem | None = None,
) -> list[FileInfo]:
    """List the entries under ``root`` that pass the filters in ``options``.

    Entries are returned depth-first in name order, each directory ahead of
    its descendants. Level 1 is the root's own children; ``depth`` 0 and 1
    both mean root level only and a negative depth is unlimited.

    Raises:
        InvalidPathError: ``root`` is empty or not a directory.
        PatternInvalidError: ``options.regex_pattern`` does not compile.
        PathNotFoundError: ``root`` does not exist.
        PermissionDeniedError: ``root`` cannot be read.
    """
    options = options or ListOptions()
    fs = fs or LocalFilesystem()

    if root is None or not str(root).strip():
        raise InvalidPathError("Path must not be empty")
    regex = _compile_regex(options.regex_pattern)
    root_str, root_names = _read_root(root, fs)

    max_depth = max(options.depth, 1) if options.depth >= 0 else None
    results: list[FileInfo] = []

    def walk(directory: str, names: list[str], level: int) -> None:
        for name in names:
            path = os.path.join(directory, name)
            try:
                st = fs.stat(path, follow_symlinks=False)
            except OSError as exc:
                logger.warning("Skipping unreadable entry %s: %s", path, exc)
                continue

            is_dir = stat.S_ISDIR(st.st_mode)
            if not should_include(name, is_dir, options, regex):
                continue

            if not (is_dir and options.filters_files):
                results.append(build_file_info(path, name, st, fs))

            if is_dir and (max_depth is None or level < max_depth):
                try:
                    children = fs.read_dir(path)
                except OSError as exc:
                    logger.warning("Skipping unreadable directory %s: %s", path, exc)
                    continue
                walk(path, children, level + 1)

    walk(root_str, root_names, 1)
    logger.debug("Listed %d entries under %s", len(results), root_str)
    return results


def list_directory(path: str | Path, fs: LocalFilesystem | None = None) -> list[FileEntry]:
    """List the immediate children of ``path`` without any filtering."""
    fs = fs or LocalFilesystem()
    dir_str, names = _read_root(path, fs)

    entries: list[FileEntry] = []
    for name in names:
        full_path = os.path.join(dir_str, name)
        try:
            st = fs.stat(full_path, follow_symlinks=False)
        except OSError as exc:
            logger.warning("Skipping unreadable entry %s: %s", full_path, exc)
            continue
        entries.append(
            FileEntry(
                name=name,
                path=full_path,
                is_dir=stat.S_ISDIR(st.st_mode),
                size=st.st_size,
                mod_time=_timestamp(st.st_mtime),
            )
        )
    return entries
