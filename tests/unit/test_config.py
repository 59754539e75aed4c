"""Tests for build settings — env-driven via pydantic-settings."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from detpack.config import DEFAULT_EXCLUDES, PackSettings
from detpack.models.archive import ArchiveFormat


class TestPackSettings:
    def test_defaults(self):
        settings = PackSettings(_env_file=None)
        assert settings.log_level == "INFO"
        assert settings.archive_format is ArchiveFormat.ZIP
        assert settings.compression_level == 9
        assert settings.include_directories is True
        assert settings.write_digest is True
        assert settings.exclude == list(DEFAULT_EXCLUDES)
        assert settings.scratch_dir is None
        assert settings.python_executable == sys.executable
        assert settings.optimize == 0
        assert settings.invalidation_mode == "timestamp"
        assert settings.timestamp is None
        assert settings.fallback_timestamp is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("DETPACK_ARCHIVE_FORMAT", "tar.gz")
        monkeypatch.setenv("DETPACK_COMPRESSION_LEVEL", "6")
        monkeypatch.setenv("DETPACK_TIMESTAMP", "202504011200")
        settings = PackSettings(_env_file=None)
        assert settings.archive_format is ArchiveFormat.TAR_GZ
        assert settings.compression_level == 6
        assert settings.timestamp == "202504011200"

    def test_exclude_from_env_json(self, monkeypatch):
        monkeypatch.setenv("DETPACK_EXCLUDE", '["*.md"]')
        assert PackSettings(_env_file=None).exclude == ["*.md"]

    def test_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DETPACK_LOG_LEVEL=DEBUG\nDETPACK_SCRATCH_DIR=/var/tmp/detpack\n")
        settings = PackSettings(_env_file=env_file)
        assert settings.log_level == "DEBUG"
        assert settings.scratch_dir == Path("/var/tmp/detpack")

    def test_init_overrides_env(self, monkeypatch):
        monkeypatch.setenv("DETPACK_COMPRESSION_LEVEL", "1")
        assert PackSettings(_env_file=None, compression_level=9).compression_level == 9

    @pytest.mark.parametrize(
        "field,value",
        [
            ("compression_level", 10),
            ("compression_level", -1),
            ("optimize", 3),
            ("invalidation_mode", "sometimes"),
            ("archive_format", "rar"),
        ],
    )
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            PackSettings(_env_file=None, **{field: value})
