"""Deterministic archiver — ZIP and gzip-compressed tar.

Entries are serialized in lexicographic order of their archive path, never
in filesystem enumeration order.  Every per-entry header field is written
from a fixed value or from the entry's content, never from the host:

ZIP
    ``date_time``       canonical timestamp (UTC, clamped to DOS range)
    ``create_system``   3 (Unix), whatever the build host is
    ``external_attr``   normalized file type + mode, DOS dir bit for dirs
    ``compress_type``   deflate for files/symlinks, stored for dirs
    compression level   passed explicitly on every ``writestr`` call; a
                        hand-built ``ZipInfo`` otherwise falls back to the
                        zlib default level, not the archive's
    ``extra``           empty: no extended timestamps, uid/gid or xattrs
    comments            empty, per entry and for the archive

TAR.GZ
    ``mtime``           canonical timestamp
    ``uid``/``gid``     0
    ``uname``/``gname`` empty
    ``mode``            normalized
    format              PAX
    gzip header         ``mtime`` = canonical timestamp, no file name (the
                        temporary output name would otherwise leak in)

Extended attributes and ACLs are never read, so they cannot be copied.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import stat
import tarfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path

from detpack.config import PackSettings
from detpack.core.errors import PackingFailed
from detpack.core.hasher import sha256_hex
from detpack.models.archive import (
    ArchiveEntry,
    ArchiveFormat,
    ArchiveManifest,
    EntryKind,
    TreeEntry,
)
from detpack.models.timestamps import CanonicalTimestamp

logger = logging.getLogger(__name__)

FILE_MODE = 0o644
EXEC_MODE = 0o755
DIR_MODE = 0o755
LINK_MODE = 0o777

_ZIP_UNIX = 3
_MSDOS_DIR = 0x10

_TYPE_BITS: dict[EntryKind, int] = {
    EntryKind.FILE: stat.S_IFREG,
    EntryKind.DIRECTORY: stat.S_IFDIR,
    EntryKind.SYMLINK: stat.S_IFLNK,
}

_ZIP_METHODS: dict[int, str] = {
    zipfile.ZIP_STORED: "stored",
    zipfile.ZIP_DEFLATED: "deflate",
}


def normalized_mode(kind: EntryKind, st_mode: int) -> int:
    """Collapse host permission bits to a fixed set per entry kind.

    Files keep only the "is executable" fact.
    """
    if kind is EntryKind.DIRECTORY:
        return DIR_MODE
    if kind is EntryKind.SYMLINK:
        return LINK_MODE
    return EXEC_MODE if st_mode & 0o111 else FILE_MODE


def collect_entries(root: Path, *, include_directories: bool = True) -> list[TreeEntry]:
    """List the tree under *root* in canonical (sorted arcname) order."""
    entries: list[TreeEntry] = []
    stack: list[tuple[str, str]] = [(os.fspath(root), "")]
    while stack:
        current, prefix = stack.pop()
        with os.scandir(current) as it:
            for item in it:
                rel = prefix + item.name
                st = item.stat(follow_symlinks=False)
                if item.is_symlink():
                    kind = EntryKind.SYMLINK
                elif item.is_dir(follow_symlinks=False):
                    stack.append((item.path, rel + "/"))
                    if not include_directories:
                        continue
                    kind = EntryKind.DIRECTORY
                    rel += "/"
                elif item.is_file(follow_symlinks=False):
                    kind = EntryKind.FILE
                else:
                    raise PackingFailed(f"unsupported file type in tree: {rel}")
                entries.append(
                    TreeEntry(
                        arcname=rel,
                        path=Path(item.path),
                        kind=kind,
                        mode=normalized_mode(kind, st.st_mode),
                    )
                )
    entries.sort(key=lambda e: e.arcname)
    return entries


def _entry_bytes(entry: TreeEntry) -> bytes:
    if entry.kind is EntryKind.SYMLINK:
        return os.fsencode(os.readlink(entry.path))
    if entry.kind is EntryKind.DIRECTORY:
        return b""
    return entry.path.read_bytes()


class Archiver:
    """Serializes a normalized tree into a reproducible archive.

    Parameters
    ----------
    archive_format:
        ZIP or TAR_GZ.
    compression_level:
        zlib level 0-9, identical for every entry.
    include_directories:
        Emit explicit directory entries (keeps empty directories).
    """

    def __init__(
        self,
        archive_format: ArchiveFormat = ArchiveFormat.ZIP,
        *,
        compression_level: int = 9,
        include_directories: bool = True,
    ) -> None:
        self.archive_format = ArchiveFormat(archive_format)
        self.compression_level = compression_level
        self.include_directories = include_directories

    @classmethod
    def from_settings(cls, settings: PackSettings) -> Archiver:
        return cls(
            settings.archive_format,
            compression_level=settings.compression_level,
            include_directories=settings.include_directories,
        )

    def pack(
        self,
        root: Path,
        destination: Path,
        timestamp: CanonicalTimestamp,
    ) -> ArchiveManifest:
        """Write the tree under *root* to *destination*.

        *destination* is normally a temporary path; publishing under the
        final name is the finalizer's job.  A partial file is removed on
        failure.
        """
        destination = Path(destination)
        try:
            entries = collect_entries(root, include_directories=self.include_directories)
            if self.archive_format is ArchiveFormat.ZIP:
                stored = self._write_zip(entries, destination, timestamp)
            else:
                stored = self._write_tar(entries, destination, timestamp)
        except PackingFailed:
            destination.unlink(missing_ok=True)
            raise
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile, tarfile.TarError) as exc:
            destination.unlink(missing_ok=True)
            raise PackingFailed(str(exc)) from exc

        logger.info(
            "Packed %d entries into %s (%s, level %d)",
            len(stored),
            destination,
            self.archive_format.value,
            self.compression_level,
        )
        return ArchiveManifest(archive_format=self.archive_format, entries=stored)

    # ------------------------------------------------------------------
    # ZIP
    # ------------------------------------------------------------------

    def _zip_info(self, entry: TreeEntry, date_time: tuple[int, ...]) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(entry.arcname, date_time=date_time)
        info.create_system = _ZIP_UNIX
        info.external_attr = (_TYPE_BITS[entry.kind] | entry.mode) << 16
        if entry.kind is EntryKind.DIRECTORY:
            info.external_attr |= _MSDOS_DIR
            info.compress_type = zipfile.ZIP_STORED
        else:
            info.compress_type = zipfile.ZIP_DEFLATED
        return info

    def _write_zip(
        self,
        entries: list[TreeEntry],
        destination: Path,
        timestamp: CanonicalTimestamp,
    ) -> list[ArchiveEntry]:
        date_time = timestamp.zip_date_time
        stored_time = datetime(*date_time).isoformat()
        stored: list[ArchiveEntry] = []
        with destination.open("wb") as fh, zipfile.ZipFile(
            fh,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
        ) as zf:
            for entry in entries:
                info = self._zip_info(entry, date_time)
                data = _entry_bytes(entry)
                zf.writestr(info, data, compresslevel=self.compression_level)
                stored.append(
                    ArchiveEntry(
                        path=entry.arcname,
                        kind=entry.kind,
                        mode=entry.mode,
                        size=len(data),
                        sha256=sha256_hex(data) if entry.kind is not EntryKind.DIRECTORY else "",
                        stored_time=stored_time,
                        method=_ZIP_METHODS[info.compress_type],
                    )
                )
            zf.comment = b""
        return stored

    # ------------------------------------------------------------------
    # TAR.GZ
    # ------------------------------------------------------------------

    def _tar_info(self, entry: TreeEntry, timestamp: CanonicalTimestamp) -> tarfile.TarInfo:
        info = tarfile.TarInfo(entry.arcname.rstrip("/"))
        info.mtime = timestamp.epoch
        info.uid = 0
        info.gid = 0
        info.uname = ""
        info.gname = ""
        info.mode = entry.mode
        if entry.kind is EntryKind.DIRECTORY:
            info.type = tarfile.DIRTYPE
        elif entry.kind is EntryKind.SYMLINK:
            info.type = tarfile.SYMTYPE
            info.linkname = os.readlink(entry.path)
        else:
            info.type = tarfile.REGTYPE
        return info

    def _write_tar(
        self,
        entries: list[TreeEntry],
        destination: Path,
        timestamp: CanonicalTimestamp,
    ) -> list[ArchiveEntry]:
        stored_time = timestamp.as_datetime.replace(tzinfo=None).isoformat()
        stored: list[ArchiveEntry] = []
        with destination.open("wb") as raw, gzip.GzipFile(
            filename="",
            mode="wb",
            fileobj=raw,
            compresslevel=self.compression_level,
            mtime=timestamp.epoch,
        ) as gz, tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for entry in entries:
                info = self._tar_info(entry, timestamp)
                data = _entry_bytes(entry)
                if entry.kind is EntryKind.FILE:
                    info.size = len(data)
                    tar.addfile(info, io.BytesIO(data))
                else:
                    tar.addfile(info)
                stored.append(
                    ArchiveEntry(
                        path=entry.arcname,
                        kind=entry.kind,
                        mode=entry.mode,
                        size=len(data),
                        sha256=sha256_hex(data) if entry.kind is not EntryKind.DIRECTORY else "",
                        stored_time=stored_time,
                        method="gzip",
                    )
                )
        return stored


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _kind_from_mode(st_mode: int, is_dir: bool) -> EntryKind:
    if stat.S_ISLNK(st_mode):
        return EntryKind.SYMLINK
    if is_dir or stat.S_ISDIR(st_mode):
        return EntryKind.DIRECTORY
    return EntryKind.FILE


def read_entries(path: Path) -> ArchiveManifest:
    """List the stored entries of a ZIP or tar archive, in stored order."""
    path = Path(path)
    if zipfile.is_zipfile(path):
        return _read_zip(path)
    if tarfile.is_tarfile(path):
        return _read_tar(path)
    raise ValueError(f"Not a ZIP or tar archive: {path}")


def _read_zip(path: Path) -> ArchiveManifest:
    entries: list[ArchiveEntry] = []
    with zipfile.ZipFile(path) as zf:
        for info in zf.infolist():
            st_mode = info.external_attr >> 16
            kind = _kind_from_mode(st_mode, info.is_dir())
            data = b"" if kind is EntryKind.DIRECTORY else zf.read(info)
            entries.append(
                ArchiveEntry(
                    path=info.filename,
                    kind=kind,
                    mode=stat.S_IMODE(st_mode),
                    size=info.file_size,
                    sha256=sha256_hex(data) if kind is not EntryKind.DIRECTORY else "",
                    stored_time=datetime(*info.date_time).isoformat(),
                    method=_ZIP_METHODS.get(info.compress_type, str(info.compress_type)),
                )
            )
    return ArchiveManifest(archive_format=ArchiveFormat.ZIP, entries=entries)


def _read_tar(path: Path) -> ArchiveManifest:
    entries: list[ArchiveEntry] = []
    with tarfile.open(path, "r:*") as tar:
        for member in tar.getmembers():
            if member.issym():
                kind = EntryKind.SYMLINK
                data = os.fsencode(member.linkname)
            elif member.isdir():
                kind = EntryKind.DIRECTORY
                data = b""
            else:
                kind = EntryKind.FILE
                fh = tar.extractfile(member)
                data = fh.read() if fh is not None else b""
            name = member.name + "/" if kind is EntryKind.DIRECTORY else member.name
            entries.append(
                ArchiveEntry(
                    path=name,
                    kind=kind,
                    mode=member.mode,
                    size=len(data),
                    sha256=sha256_hex(data) if kind is not EntryKind.DIRECTORY else "",
                    stored_time=datetime.fromtimestamp(member.mtime, tz=timezone.utc)
                    .replace(tzinfo=None)
                    .isoformat(),
                    method="gzip",
                )
            )
    return ArchiveManifest(archive_format=ArchiveFormat.TAR_GZ, entries=entries)


def pack(
    root: Path,
    destination: Path,
    timestamp: CanonicalTimestamp,
    settings: PackSettings,
) -> ArchiveManifest:
    """Module-level convenience wrapper around ``Archiver.pack``."""
    return Archiver.from_settings(settings).pack(root, destination, timestamp)
