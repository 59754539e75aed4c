"""Unit tests for the deterministic archiver and archive reader."""

from __future__ import annotations

import gzip
import os
import stat
import tarfile
import zipfile

import pytest

from detpack.core.archiver import (
    DIR_MODE,
    EXEC_MODE,
    FILE_MODE,
    Archiver,
    collect_entries,
    normalized_mode,
    pack,
    read_entries,
)
from detpack.core.errors import PackingFailed
from detpack.core.hasher import sha256_file
from detpack.models.archive import ArchiveFormat, EntryKind
from detpack.models.timestamps import CanonicalTimestamp


@pytest.fixture
def tree(tmp_path, write_tree):
    return write_tree(
        tmp_path / "tree",
        {"log.py": "print(1)\n", "dep/util.py": "x=1\n", "dep/__init__.py": ""},
    )


# ---------------------------------------------------------------------------
# Test: Logical tree collection
# ---------------------------------------------------------------------------


class TestCollectEntries:
    def test_sorted_by_arcname(self, tree):
        names = [e.arcname for e in collect_entries(tree)]
        assert names == ["dep/", "dep/__init__.py", "dep/util.py", "log.py"]

    def test_without_directories(self, tree):
        names = [e.arcname for e in collect_entries(tree, include_directories=False)]
        assert names == ["dep/__init__.py", "dep/util.py", "log.py"]

    def test_kinds(self, tree):
        kinds = {e.arcname: e.kind for e in collect_entries(tree)}
        assert kinds["dep/"] is EntryKind.DIRECTORY
        assert kinds["log.py"] is EntryKind.FILE

    def test_fifo_rejected(self, tree):
        if not hasattr(os, "mkfifo"):
            pytest.skip("no FIFOs on this platform")
        os.mkfifo(tree / "pipe")
        with pytest.raises(PackingFailed, match="unsupported"):
            collect_entries(tree)


class TestNormalizedMode:
    @pytest.mark.parametrize("host_mode", [0o600, 0o644, 0o664, 0o400])
    def test_plain_files(self, host_mode):
        assert normalized_mode(EntryKind.FILE, host_mode) == FILE_MODE

    @pytest.mark.parametrize("host_mode", [0o700, 0o755, 0o744, 0o711])
    def test_executable_files(self, host_mode):
        assert normalized_mode(EntryKind.FILE, host_mode) == EXEC_MODE

    def test_directories(self):
        assert normalized_mode(EntryKind.DIRECTORY, 0o700) == DIR_MODE


# ---------------------------------------------------------------------------
# Test: ZIP
# ---------------------------------------------------------------------------


class TestZip:
    def test_entries_and_content(self, tree, tmp_path, pinned_timestamp):
        out = tmp_path / "a.zip"
        manifest = Archiver().pack(tree, out, pinned_timestamp)
        with zipfile.ZipFile(out) as zf:
            assert zf.namelist() == manifest.paths
            assert zf.read("log.py") == b"print(1)\n"

    def test_pinned_header_fields(self, tree, tmp_path, pinned_timestamp):
        out = tmp_path / "a.zip"
        Archiver().pack(tree, out, pinned_timestamp)
        with zipfile.ZipFile(out) as zf:
            for info in zf.infolist():
                assert info.date_time == (2025, 4, 1, 12, 0, 0)
                assert info.create_system == 3
                assert info.extra == b""
                assert info.comment == b""
            assert zf.comment == b""
            file_info = zf.getinfo("log.py")
            assert file_info.compress_type == zipfile.ZIP_DEFLATED
            assert stat.S_IMODE(file_info.external_attr >> 16) == FILE_MODE
            dir_info = zf.getinfo("dep/")
            assert dir_info.compress_type == zipfile.ZIP_STORED
            assert stat.S_ISDIR(dir_info.external_attr >> 16)

    def test_same_tree_same_bytes(self, tree, tmp_path, pinned_timestamp):
        Archiver().pack(tree, tmp_path / "a.zip", pinned_timestamp)
        Archiver().pack(tree, tmp_path / "b.zip", pinned_timestamp)
        assert sha256_file(tmp_path / "a.zip") == sha256_file(tmp_path / "b.zip")

    def test_host_mtimes_ignored(self, tree, tmp_path, pinned_timestamp):
        Archiver().pack(tree, tmp_path / "a.zip", pinned_timestamp)
        os.utime(tree / "log.py", (12345, 12345))
        Archiver().pack(tree, tmp_path / "b.zip", pinned_timestamp)
        assert sha256_file(tmp_path / "a.zip") == sha256_file(tmp_path / "b.zip")

    def test_host_permissions_collapsed(self, tree, tmp_path, pinned_timestamp):
        Archiver().pack(tree, tmp_path / "a.zip", pinned_timestamp)
        os.chmod(tree / "log.py", 0o600)
        Archiver().pack(tree, tmp_path / "b.zip", pinned_timestamp)
        assert sha256_file(tmp_path / "a.zip") == sha256_file(tmp_path / "b.zip")

    def test_timestamp_changes_bytes(self, tree, tmp_path, pinned_timestamp):
        later = CanonicalTimestamp(epoch=pinned_timestamp.epoch + 86400)
        Archiver().pack(tree, tmp_path / "a.zip", pinned_timestamp)
        Archiver().pack(tree, tmp_path / "b.zip", later)
        assert sha256_file(tmp_path / "a.zip") != sha256_file(tmp_path / "b.zip")

    def test_compression_level_applies_to_entries(self, tmp_path, write_tree, pinned_timestamp):
        root = write_tree(tmp_path / "t", {"big.txt": "abcdefgh" * 5000})
        Archiver(compression_level=0).pack(root, tmp_path / "l0.zip", pinned_timestamp)
        Archiver(compression_level=9).pack(root, tmp_path / "l9.zip", pinned_timestamp)
        assert (tmp_path / "l0.zip").stat().st_size > (tmp_path / "l9.zip").stat().st_size

    def test_symlink_stored_as_link(self, tree, tmp_path, pinned_timestamp):
        os.symlink("log.py", tree / "alias.py")
        manifest = Archiver().pack(tree, tmp_path / "a.zip", pinned_timestamp)
        entry = manifest.get("alias.py")
        assert entry is not None and entry.kind is EntryKind.SYMLINK
        with zipfile.ZipFile(tmp_path / "a.zip") as zf:
            assert zf.read("alias.py") == b"log.py"
            assert stat.S_ISLNK(zf.getinfo("alias.py").external_attr >> 16)

    def test_failure_removes_partial_file(self, tree, tmp_path, pinned_timestamp):
        if not hasattr(os, "mkfifo"):
            pytest.skip("no FIFOs on this platform")
        os.mkfifo(tree / "pipe")
        out = tmp_path / "a.zip"
        with pytest.raises(PackingFailed):
            Archiver().pack(tree, out, pinned_timestamp)
        assert not out.exists()


# ---------------------------------------------------------------------------
# Test: TAR.GZ
# ---------------------------------------------------------------------------


class TestTarGz:
    def test_pinned_header_fields(self, tree, tmp_path, pinned_timestamp):
        out = tmp_path / "a.tar.gz"
        Archiver(ArchiveFormat.TAR_GZ).pack(tree, out, pinned_timestamp)
        with tarfile.open(out, "r:gz") as tar:
            members = tar.getmembers()
            assert [m.name for m in members] == ["dep", "dep/__init__.py", "dep/util.py", "log.py"]
            for m in members:
                assert m.mtime == pinned_timestamp.epoch
                assert (m.uid, m.gid, m.uname, m.gname) == (0, 0, "", "")

    def test_gzip_header_pinned(self, tree, tmp_path, pinned_timestamp):
        out = tmp_path / "a.tar.gz"
        Archiver(ArchiveFormat.TAR_GZ).pack(tree, out, pinned_timestamp)
        header = out.read_bytes()[:10]
        assert int.from_bytes(header[4:8], "little") == pinned_timestamp.epoch
        # FNAME flag clear: no file name embedded
        assert header[3] & 0x08 == 0
        assert gzip.decompress(out.read_bytes())

    def test_same_tree_same_bytes(self, tree, tmp_path, pinned_timestamp):
        archiver = Archiver(ArchiveFormat.TAR_GZ)
        archiver.pack(tree, tmp_path / "a.tar.gz", pinned_timestamp)
        archiver.pack(tree, tmp_path / "b.tar.gz", pinned_timestamp)
        assert sha256_file(tmp_path / "a.tar.gz") == sha256_file(tmp_path / "b.tar.gz")


# ---------------------------------------------------------------------------
# Test: Reading back
# ---------------------------------------------------------------------------


class TestReadEntries:
    @pytest.mark.parametrize("fmt", [ArchiveFormat.ZIP, ArchiveFormat.TAR_GZ])
    def test_matches_written_manifest(self, tree, tmp_path, pinned_timestamp, fmt):
        out = tmp_path / f"a{fmt.suffix}"
        written = Archiver(fmt).pack(tree, out, pinned_timestamp)
        assert read_entries(out) == written

    def test_not_an_archive(self, tmp_path):
        junk = tmp_path / "junk.bin"
        junk.write_bytes(b"not an archive")
        with pytest.raises(ValueError):
            read_entries(junk)

    def test_module_level_wrapper(self, tree, tmp_path, pinned_timestamp, settings):
        manifest = pack(tree, tmp_path / "a.zip", pinned_timestamp, settings)
        assert manifest.archive_format is ArchiveFormat.ZIP
        assert manifest.entry_count == 4
