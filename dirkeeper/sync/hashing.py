"""Streaming content hasher used to decide whether a file changed."""

import hashlib
from pathlib import Path

from dirkeeper.explorer.filesystem import LocalFilesystem

HASH_CHUNK_SIZE = 65536  # 64 KB chunks for hashing


def compute_file_hash(file_path: str | Path, fs: LocalFilesystem | None = None) -> str:
    """Compute the SHA-256 hex digest of a file's contents."""
    fs = fs or LocalFilesystem()
    sha256 = hashlib.sha256()
    with fs.open(file_path) as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            sha256.update(chunk)
    return sha256.hexdigest()
