"""Best-effort MIME type detection for listed files.

Extension lookup first (a table of source/config types the stdlib does not
know, then ``mimetypes``); libmagic content sniffing of the first bytes as a
last resort.
"""

import logging
import mimetypes
from pathlib import Path

import magic

from dirkeeper.explorer.filesystem import LocalFilesystem

logger = logging.getLogger(__name__)

SNIFF_LENGTH = 2048
OCTET_STREAM = "application/octet-stream"

CUSTOM_MIME_TYPES: dict[str, str] = {
    ".md": "text/markdown",
    ".go": "text/x-go",
    ".py": "text/x-python",
    ".js": "application/javascript",
    ".ts": "application/typescript",
    ".jsx": "text/jsx",
    ".tsx": "text/tsx",
    ".vue": "text/vue",
    ".json": "application/json",
    ".yaml": "application/x-yaml",
    ".yml": "application/x-yaml",
    ".toml": "application/toml",
    ".ini": "text/plain",
    ".conf": "text/plain",
    ".sh": "text/x-shellscript",
    ".bash": "text/x-shellscript",
    ".zsh": "text/x-shellscript",
    ".fish": "text/x-shellscript",
    ".sql": "text/x-sql",
    ".c": "text/x-c",
    ".h": "text/x-c",
    ".cpp": "text/x-c++",
    ".hpp": "text/x-c++",
    ".cs": "text/x-csharp",
    ".java": "text/x-java",
    ".scala": "text/x-scala",
    ".rs": "text/x-rust",
    ".rb": "text/x-ruby",
    ".php": "text/x-php",
    ".pl": "text/x-perl",
    ".swift": "text/x-swift",
    ".kt": "text/x-kotlin",
    ".ex": "text/x-elixir",
    ".exs": "text/x-elixir",
    ".hs": "text/x-haskell",
    ".lua": "text/x-lua",
    ".r": "text/x-r",
    ".jl": "text/x-julia",
}


def sniff_content_type(head: bytes) -> str:
    """Guess a MIME type from the leading bytes of a file."""
    try:
        return magic.from_buffer(head, mime=True) or OCTET_STREAM
    except magic.MagicException as exc:
        logger.debug("libmagic could not classify content: %s", exc)
        return OCTET_STREAM


def detect_mime_type(path: str | Path, fs: LocalFilesystem | None = None) -> str:
    """Return the MIME type of a regular file.

    Raises:
        OSError: If content sniffing is needed and the file cannot be read.
    """
    ext = Path(path).suffix.lower()
    if ext in CUSTOM_MIME_TYPES:
        return CUSTOM_MIME_TYPES[ext]

    mime_type, _encoding = mimetypes.guess_type(Path(path).name)
    if mime_type:
        return mime_type

    fs = fs or LocalFilesystem()
    with fs.open(path) as f:
        head = f.read(SNIFF_LENGTH)
    return sniff_content_type(head)
