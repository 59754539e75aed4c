"""Shared test fixtures for detpack."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from detpack.config import PackSettings
from detpack.core.oracle import PinnedTimestampOracle
from detpack.core.pipeline import build
from detpack.models.build import BuildResult
from detpack.models.timestamps import CanonicalTimestamp

# The reference scenario: touch-style 202504011200, read as UTC.
PINNED_TIMESTAMP = "202504011200"
PINNED_EPOCH = 1743508800


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's build environment out of every test."""
    monkeypatch.delenv("SOURCE_DATE_EPOCH", raising=False)
    for key in list(os.environ):
        if key.startswith("DETPACK_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def pinned_timestamp() -> CanonicalTimestamp:
    """The canonical timestamp of the reference scenario."""
    return CanonicalTimestamp.parse(PINNED_TIMESTAMP)


@pytest.fixture
def pinned_oracle(pinned_timestamp: CanonicalTimestamp) -> PinnedTimestampOracle:
    return PinnedTimestampOracle(pinned_timestamp)


@pytest.fixture
def settings() -> PackSettings:
    """Default settings, isolated from any ``.env`` file."""
    return PackSettings(_env_file=None)


@pytest.fixture
def source_dir(tmp_dir: Path) -> Path:
    """Source tree with a single ``log.py``."""
    src = tmp_dir / "src"
    src.mkdir()
    (src / "log.py").write_text("print(1)\n")
    return src


@pytest.fixture
def dependency_dir(tmp_dir: Path) -> Path:
    """Dependency tree with a single ``dep/util.py``."""
    deps = tmp_dir / "deps"
    (deps / "dep").mkdir(parents=True)
    (deps / "dep" / "util.py").write_text("x=1\n")
    return deps


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, str]], Path]:
    """Factory fixture: materialize ``{relative_path: text}`` under a root."""

    def _factory(root: Path, files: dict[str, str]) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        return root

    return _factory


@pytest.fixture
def make_build(
    tmp_dir: Path,
    source_dir: Path,
    dependency_dir: Path,
    pinned_oracle: PinnedTimestampOracle,
    settings: PackSettings,
) -> Callable[..., BuildResult]:
    """Factory fixture: run the reference build into ``out/<name>``."""

    def _factory(name: str = "bundle.zip", **overrides: Any) -> BuildResult:
        kwargs: dict[str, Any] = {
            "source_dir": source_dir,
            "dependency_dir": dependency_dir,
            "output_path": tmp_dir / "out" / name,
            "precompile": False,
            "oracle": pinned_oracle,
            "settings": settings,
        }
        kwargs.update(overrides)
        return build(**kwargs)

    return _factory
