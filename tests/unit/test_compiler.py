"""Unit tests for the bytecode generator.

These run the real worker under the current interpreter.
"""

from __future__ import annotations

import importlib.util
import os
import struct
import sys

import pytest

from detpack.core.compiler import (
    BytecodeCompiler,
    _worker_env,
    generate,
    strip_intermediate_artifacts,
)
from detpack.core.errors import CompilationFailed
from detpack.core.normalizer import normalize


@pytest.fixture
def tree(tmp_path, write_tree, pinned_timestamp):
    root = write_tree(tmp_path / "tree", {"log.py": "print(1)\n", "dep/util.py": "x=1\n"})
    normalize(root, pinned_timestamp)
    return root


def _pyc(root, rel):
    return importlib.util.cache_from_source(str(root / rel))


def _compiler(**kwargs):
    return BytecodeCompiler(sys.executable, **kwargs)


class TestGenerate:
    def test_compiles_every_source(self, tree):
        report = _compiler().generate(tree)
        assert report.compiled == ["dep/util.py", "log.py"]
        assert report.cache_tag == sys.implementation.cache_tag
        assert os.path.exists(_pyc(tree, "log.py"))
        assert os.path.exists(_pyc(tree, "dep/util.py"))

    def test_embeds_pinned_source_mtime(self, tree, pinned_timestamp):
        _compiler().generate(tree)
        with open(_pyc(tree, "log.py"), "rb") as fh:
            header = fh.read(16)
        flags, mtime = struct.unpack("<II", header[4:12])
        assert flags == 0
        assert mtime == pinned_timestamp.epoch

    def test_regenerates_identical_bytes(self, tree):
        _compiler().generate(tree)
        first = open(_pyc(tree, "log.py"), "rb").read()
        _compiler().generate(tree)
        assert open(_pyc(tree, "log.py"), "rb").read() == first

    def test_stale_cache_replaced(self, tree):
        cache = _pyc(tree, "log.py")
        os.makedirs(os.path.dirname(cache))
        with open(cache, "wb") as fh:
            fh.write(b"stale")
        report = _compiler().generate(tree)
        assert report.purged == 1
        assert open(cache, "rb").read() != b"stale"

    def test_orphan_cache_removed(self, tree):
        orphan = tree / "__pycache__" / "gone.cpython-00.pyc"
        orphan.parent.mkdir()
        orphan.write_bytes(b"orphan")
        _compiler().generate(tree)
        assert not orphan.exists()

    def test_embedded_name_is_tree_relative(self, tree):
        _compiler().generate(tree)
        data = open(_pyc(tree, "dep/util.py"), "rb").read()
        assert b"dep/util.py" in data
        assert os.fsencode(str(tree)) not in data

    def test_prefix_prepended_to_embedded_name(self, tree):
        _compiler(prefix="/var/task").generate(tree)
        data = open(_pyc(tree, "log.py"), "rb").read()
        assert b"/var/task/log.py" in data

    def test_hash_mode_explicit(self, tree):
        report = _compiler(invalidation_mode="checked-hash").generate(tree)
        assert report.invalidation_mode == "checked-hash"
        with open(_pyc(tree, "log.py"), "rb") as fh:
            flags = struct.unpack("<I", fh.read(8)[4:8])[0]
        assert flags == 0b11

    def test_source_date_epoch_does_not_switch_mode(self, tree, monkeypatch):
        monkeypatch.setenv("SOURCE_DATE_EPOCH", "1")
        _compiler().generate(tree)
        with open(_pyc(tree, "log.py"), "rb") as fh:
            flags = struct.unpack("<I", fh.read(8)[4:8])[0]
        assert flags == 0

    def test_module_level_wrapper(self, tree, settings):
        assert generate(tree, settings).compiled == ["dep/util.py", "log.py"]


class TestFailures:
    def test_syntax_error_reports_relative_path(self, tree):
        (tree / "broken.py").write_text("def broken(:\n")
        with pytest.raises(CompilationFailed) as excinfo:
            _compiler().generate(tree)
        assert excinfo.value.path == "broken.py"
        assert excinfo.value.exit_code == 5

    def test_syntax_error_leaves_no_artifacts(self, tree):
        (tree / "zzz_broken.py").write_text("def broken(:\n")
        with pytest.raises(CompilationFailed):
            _compiler().generate(tree)
        assert not list(tree.rglob("__pycache__"))

    def test_missing_interpreter(self, tree):
        with pytest.raises(CompilationFailed) as excinfo:
            BytecodeCompiler("/nonexistent/python-detpack").generate(tree)
        assert excinfo.value.path is None


class TestStripAndEnvironment:
    def test_strip_counts_files(self, tree):
        _compiler().generate(tree)
        assert strip_intermediate_artifacts(tree) == 2
        assert not list(tree.rglob("*.pyc"))

    def test_strip_on_clean_tree(self, tree):
        assert strip_intermediate_artifacts(tree) == 0

    def test_worker_env_is_scrubbed(self, monkeypatch):
        monkeypatch.setenv("PYTHONPYCACHEPREFIX", "/elsewhere")
        monkeypatch.setenv("PYTHONHASHSEED", "random")
        monkeypatch.setenv("SOURCE_DATE_EPOCH", "1")
        env = _worker_env()
        assert "PYTHONPYCACHEPREFIX" not in env
        assert "SOURCE_DATE_EPOCH" not in env
        assert env["PYTHONHASHSEED"] == "0"
