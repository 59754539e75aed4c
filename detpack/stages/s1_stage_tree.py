"""Stage 1 — Tree Staging.

Merges the dependency directory and the source directory into the scratch
root.  Sources are copied last and win every path conflict; the shadowed
paths are part of the stage output so they show up in the build report.
"""

from __future__ import annotations

from typing import Any, ClassVar

from detpack.config import PackSettings
from detpack.core.errors import BuildError, StagingFailed
from detpack.core.finalizer import output_patterns
from detpack.core.stager import TreeStager
from detpack.models.build import BuildRequest
from detpack.stages.base import BaseStage


class TreeStagingStage(BaseStage):
    """Stage 1: copy inputs into scratch space."""

    failure_type: ClassVar[type[BuildError]] = StagingFailed

    @property
    def stage_id(self) -> str:
        return "s1_stage_tree"

    @property
    def display_name(self) -> str:
        return "Tree Staging"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        request: BuildRequest = run_context["request"]
        settings: PackSettings = run_context["settings"]

        # The output may live inside an input tree (`detpack build . -o dist/app.zip`).
        staged = TreeStager(settings.exclude, output_patterns(request.output_path)).stage(
            request.dependency_dir,
            request.source_dir,
            run_context["scratch_root"],
        )
        run_context["staged"] = staged

        return {
            "file_count": staged.file_count,
            "shadowed": staged.shadowed,
            "summary": f"{staged.file_count} files, {len(staged.shadowed)} shadowed",
        }
