"""Schemas for directory listings.

``FileInfo`` and ``FileEntry`` are transient: produced per listing request and
never persisted. JSON output uses the camelCase field names clients expect.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ListOptions(BaseModel):
    """Filters and bounds for a recursive listing."""

    depth: int = Field(
        default=1,
        description="Levels below the root to visit; 0 is root level only, negative is unlimited",
    )
    include: list[str] = Field(default_factory=list, description="Glob patterns files must match")
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns that drop files and prune directories",
    )
    regex_pattern: str | None = Field(default=None, description="Regex file names must match")
    show_hidden: bool = False

    @property
    def filters_files(self) -> bool:
        """True when the listing means "find matching files" rather than "list the tree"."""
        return bool(self.include) or bool(self.regex_pattern)


class FileInfo(BaseModel):
    """Metadata for one entry returned by the directory explorer."""

    name: str
    path: str
    size: int = Field(ge=0)
    is_directory: bool = Field(serialization_alias="isDirectory")
    mod_time: datetime = Field(serialization_alias="modTime")
    create_time: datetime = Field(serialization_alias="createTime")
    permissions: str = Field(description="Mode string such as -rw-r--r--")
    mime_type: str | None = Field(default=None, serialization_alias="mimeType")


class FileEntry(BaseModel):
    """A simplified entry from a flat, unfiltered directory listing."""

    name: str
    path: str
    is_dir: bool = Field(serialization_alias="isDir")
    size: int = Field(ge=0)
    mod_time: datetime = Field(serialization_alias="modTime")
