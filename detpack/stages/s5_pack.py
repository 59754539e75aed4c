"""Stage 5 — Archive Packing.

Serializes the normalized scratch tree into the pending (temporary) output
file.  The archive digest is part of the stage output, so identical inputs
give identical stage hashes.
"""

from __future__ import annotations

from typing import Any, ClassVar

from detpack.config import PackSettings
from detpack.core.archiver import Archiver
from detpack.core.errors import BuildError, PackingFailed
from detpack.core.hasher import sha256_file
from detpack.stages.base import BaseStage


class PackStage(BaseStage):
    """Stage 5: write the archive."""

    failure_type: ClassVar[type[BuildError]] = PackingFailed

    @property
    def stage_id(self) -> str:
        return "s5_pack"

    @property
    def display_name(self) -> str:
        return "Archive Packing"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        settings: PackSettings = run_context["settings"]
        pending = run_context["pending_path"]

        manifest = Archiver.from_settings(settings).pack(
            run_context["scratch_root"],
            pending,
            run_context["timestamp"],
        )
        run_context["manifest"] = manifest
        digest = sha256_file(pending)

        return {
            "format": manifest.archive_format.value,
            "entries": manifest.entry_count,
            "sha256": digest,
            "summary": f"{manifest.entry_count} entries, sha256 {digest[:16]}",
        }
