"""Build configuration — env-driven via pydantic-settings.

Reads from a .env file and DETPACK_* environment variables.  Nothing in
here may influence archive bytes except through an explicit field (format,
compression level, exclusions, compile options, timestamp pinning).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from detpack.models.archive import ArchiveFormat

DEFAULT_EXCLUDES: tuple[str, ...] = (
    "__pycache__",
    "*.pyc",
    "*.pyo",
    ".git",
    ".DS_Store",
)


class PackSettings(BaseSettings):
    """Build settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DETPACK_ARCHIVE_FORMAT=tar.gz
        export DETPACK_COMPRESSION_LEVEL=6
        export DETPACK_PYTHON_EXECUTABLE=/opt/python3.12/bin/python3

    Or via .env file::

        DETPACK_TIMESTAMP=202504011200
        DETPACK_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DETPACK_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Archive
    archive_format: ArchiveFormat = ArchiveFormat.ZIP
    compression_level: int = Field(default=9, ge=0, le=9)
    include_directories: bool = True
    exclude: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    write_digest: bool = True

    # Scratch space; None means the system temp dir
    scratch_dir: Path | None = None

    # Precompilation
    python_executable: str = sys.executable
    optimize: int = Field(default=0, ge=0, le=2)
    invalidation_mode: Literal["timestamp", "checked-hash", "unchecked-hash"] = "timestamp"
    compile_prefix: str = ""
    compile_timeout_seconds: int = 600

    # Timestamp pinning (parsed by CanonicalTimestamp.parse)
    timestamp: str | None = None
    fallback_timestamp: str | None = None
