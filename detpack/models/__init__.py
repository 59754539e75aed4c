"""Pydantic models for detpack — frozen, deterministic, serializable."""

from detpack.models.archive import (
    ArchiveEntry,
    ArchiveFormat,
    ArchiveManifest,
    EntryKind,
    TreeEntry,
)
from detpack.models.build import BuildRequest, BuildResult, CompileReport, StagedTree
from detpack.models.stages import (
    BUILD_STAGES,
    STAGES_BY_ID,
    StageDefinition,
    StageRecord,
    StageState,
)
from detpack.models.timestamps import CanonicalTimestamp

__all__ = [
    "ArchiveEntry",
    "ArchiveFormat",
    "ArchiveManifest",
    "BUILD_STAGES",
    "STAGES_BY_ID",
    "BuildRequest",
    "BuildResult",
    "CanonicalTimestamp",
    "CompileReport",
    "EntryKind",
    "StageDefinition",
    "StageRecord",
    "StageState",
    "StagedTree",
    "TreeEntry",
]
