"""Build request, intermediate reports, and the build result."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from detpack.models.archive import ArchiveFormat, ArchiveManifest
from detpack.models.stages import StageRecord
from detpack.models.timestamps import CanonicalTimestamp


class BuildRequest(BaseModel):
    """What the caller asked for."""

    model_config = ConfigDict(frozen=True)

    source_dir: Path
    dependency_dir: Path | None = None
    output_path: Path
    precompile: bool = False


class StagedTree(BaseModel):
    """Result of merging dependency and source trees into scratch space."""

    model_config = ConfigDict(frozen=True)

    root: Path
    file_count: int = 0
    shadowed: list[str] = []  # dependency paths replaced by source paths


class CompileReport(BaseModel):
    """Result of one intermediate-artifact generation run."""

    model_config = ConfigDict(frozen=True)

    compiled: list[str] = []  # tree-relative source paths, sorted
    purged: int = 0  # stale artifacts removed before compiling
    cache_tag: str = ""  # e.g. "cpython-312"
    invalidation_mode: str = "timestamp"


class BuildResult(BaseModel):
    """Everything a caller needs after a successful build."""

    model_config = ConfigDict(frozen=True)

    archive_path: Path
    archive_format: ArchiveFormat
    sha256: str
    sha256_base64: str
    size_bytes: int
    timestamp: CanonicalTimestamp
    precompiled: bool
    manifest: ArchiveManifest
    stages: list[StageRecord] = []
    shadowed: list[str] = []
    compiled_count: int = 0
    digest_path: Path | None = None
