"""Stage 3 — Bytecode Precompilation (optional).

Runs only when the build request asks for it.  Regenerates every cached
artifact from scratch; a rejected source file aborts the build with its
tree-relative path.
"""

from __future__ import annotations

from typing import Any, ClassVar

from detpack.config import PackSettings
from detpack.core.compiler import BytecodeCompiler
from detpack.core.errors import BuildError, CompilationFailed
from detpack.models.build import BuildRequest
from detpack.stages.base import BaseStage


class PrecompileStage(BaseStage):
    """Stage 3: generate deterministic ``.pyc`` files."""

    failure_type: ClassVar[type[BuildError]] = CompilationFailed

    @property
    def stage_id(self) -> str:
        return "s3_precompile"

    @property
    def display_name(self) -> str:
        return "Bytecode Precompilation"

    def is_enabled(self, run_context: dict[str, Any]) -> bool:
        request: BuildRequest = run_context["request"]
        return request.precompile

    def wrap_failure(self, exc: Exception) -> BuildError:
        return CompilationFailed(None, str(exc))

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        settings: PackSettings = run_context["settings"]
        report = BytecodeCompiler.from_settings(settings).generate(
            run_context["scratch_root"]
        )
        run_context["compile_report"] = report

        return {
            "compiled": report.compiled,
            "purged": report.purged,
            "cache_tag": report.cache_tag,
            "invalidation_mode": report.invalidation_mode,
            "summary": f"{len(report.compiled)} files ({report.cache_tag}, {report.invalidation_mode})",
        }
