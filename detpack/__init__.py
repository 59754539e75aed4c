"""detpack: byte-for-byte reproducible deployment archives.

Every byte of an archive is a pure function of three inputs: source content,
dependency content and one canonical timestamp.
  - Timestamp oracle backed by version-control history or SOURCE_DATE_EPOCH
  - Dependency/source tree staging with explicit shadowing
  - Timestamp normalization before and after bytecode generation
  - Optional deterministic CPython bytecode precompilation
  - Sorted, metadata-pinned ZIP and tar.gz archives
  - Atomic publication with a base64 SHA-256 digest sidecar
"""

__version__ = "0.1.0"
__description__ = "Deterministic, reproducible build-and-pack pipeline"

from detpack.core.errors import (
    BuildError,
    CompilationFailed,
    OracleUnavailable,
    PackingFailed,
    StagingFailed,
)
from detpack.core.pipeline import BuildPipeline, build

__all__ = [
    "BuildPipeline",
    "build",
    "BuildError",
    "OracleUnavailable",
    "StagingFailed",
    "CompilationFailed",
    "PackingFailed",
    "__version__",
]
