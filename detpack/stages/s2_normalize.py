"""Stages 2 and 4 — Timestamp Normalization.

The same stage class runs twice: once before bytecode generation, so the
compiler reads pinned source mtimes, and once after, so the generated files
carry the pinned value too.
"""

from __future__ import annotations

from typing import Any, ClassVar

from detpack.core.errors import BuildError, StagingFailed
from detpack.core.normalizer import normalize
from detpack.models.stages import STAGES_BY_ID
from detpack.stages.base import BaseStage


class NormalizeStage(BaseStage):
    """Stage 2/4: pin every mtime in the scratch tree."""

    failure_type: ClassVar[type[BuildError]] = StagingFailed

    def __init__(self, stage_id: str = "s2_normalize") -> None:
        if stage_id not in ("s2_normalize", "s4_renormalize"):
            raise ValueError(f"NormalizeStage cannot run as {stage_id!r}")
        self._stage_id = stage_id

    @property
    def stage_id(self) -> str:
        return self._stage_id

    @property
    def display_name(self) -> str:
        return STAGES_BY_ID[self._stage_id].display_name

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        timestamp = run_context["timestamp"]
        count = normalize(run_context["scratch_root"], timestamp)
        return {
            "entries": count,
            "epoch": timestamp.epoch,
            "summary": f"{count} entries at {timestamp.isoformat}",
        }
