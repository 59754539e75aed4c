"""Archive and logical-tree models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ArchiveFormat(str, Enum):
    """Supported output archive formats."""

    ZIP = "zip"
    TAR_GZ = "tar.gz"

    @property
    def suffix(self) -> str:
        return f".{self.value}"


class EntryKind(str, Enum):
    """File type of a logical tree entry."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class TreeEntry(BaseModel):
    """One entry of the staged tree, ready to serialize.

    ``arcname`` is the relative, forward-slash path used inside the archive
    (directories end with ``/``).  ``mode`` is the normalized permission
    set, not whatever the host reported.
    """

    model_config = ConfigDict(frozen=True)

    arcname: str
    path: Path
    kind: EntryKind
    mode: int


class ArchiveEntry(BaseModel):
    """An entry as stored in a written archive."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: EntryKind
    mode: int
    size: int
    sha256: str = ""
    stored_time: str = ""  # ISO-8601 of the header timestamp
    method: str = ""  # "deflate", "stored", "gzip"


class ArchiveManifest(BaseModel):
    """Entries of an archive in stored order."""

    model_config = ConfigDict(frozen=True)

    archive_format: ArchiveFormat
    entries: list[ArchiveEntry] = []

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> list[str]:
        return [e.path for e in self.entries]

    def get(self, path: str) -> ArchiveEntry | None:
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None
