"""Build pipeline — the single entry point that produces an archive.

The BuildPipeline wires the timestamp oracle, scratch allocation, the pending
output file and the ordered stage list into one linear run:

    oracle -> stage tree -> normalize -> (precompile -> normalize)
           -> pack -> finalize -> publish

Nothing is published unless every stage succeeds.  The scratch tree and the
pending output are released on every exit path, so a failed build leaves no
partial state behind and does not touch an existing file at the output path.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from detpack.config import PackSettings
from detpack.core.finalizer import pending_output
from detpack.core.oracle import TimestampOracle, default_oracle
from detpack.core.stager import scratch_tree
from detpack.models.build import BuildRequest, BuildResult, StagedTree
from detpack.stages import BaseStage, build_stages

logger = logging.getLogger(__name__)


class BuildPipeline:
    """Runs one deterministic build.

    Parameters
    ----------
    settings:
        Build settings.  Reads ``DETPACK_*`` environment variables if not
        provided.
    oracle:
        Timestamp oracle.  Defaults to ``default_oracle(settings)``.
    """

    def __init__(
        self,
        settings: PackSettings | None = None,
        oracle: TimestampOracle | None = None,
    ) -> None:
        self.settings = settings or PackSettings()
        self.oracle = oracle or default_oracle(self.settings)

    def stages(self) -> list[BaseStage]:
        return build_stages()

    def build(self, request: BuildRequest) -> BuildResult:
        """Execute every stage in order and return the published result.

        Raises
        ------
        BuildError
            The subclass of the first stage that failed.
        """
        output_path = Path(request.output_path).absolute()
        request = request.model_copy(update={"output_path": output_path})
        logger.info(
            "Building %s -> %s (precompile=%s, format=%s)",
            request.source_dir,
            output_path,
            request.precompile,
            self.settings.archive_format.value,
        )

        with scratch_tree(self.settings.scratch_dir) as scratch_root:
            with pending_output(output_path) as pending_path:
                run_context: dict[str, Any] = {
                    "settings": self.settings,
                    "request": request,
                    "oracle": self.oracle,
                    "scratch_root": scratch_root,
                    "pending_path": pending_path,
                    "stage_results": {},
                    "stage_records": [],
                }
                for stage in self.stages():
                    stage.run_stage(run_context)

        return self._result(request, run_context)

    def _result(self, request: BuildRequest, run_context: dict[str, Any]) -> BuildResult:
        digest, digest_b64, size = run_context["archive_digest"]
        staged: StagedTree = run_context["staged"]
        report = run_context.get("compile_report")

        result = BuildResult(
            archive_path=request.output_path,
            archive_format=self.settings.archive_format,
            sha256=digest,
            sha256_base64=digest_b64,
            size_bytes=size,
            timestamp=run_context["timestamp"],
            precompiled=report is not None,
            manifest=run_context["manifest"],
            stages=run_context["stage_records"],
            shadowed=staged.shadowed,
            compiled_count=len(report.compiled) if report is not None else 0,
            digest_path=run_context.get("digest_path"),
        )
        logger.info("Build complete: %s sha256=%s", result.archive_path, result.sha256)
        return result


def build(
    source_dir: Path,
    dependency_dir: Path | None,
    output_path: Path,
    precompile: bool = False,
    *,
    oracle: TimestampOracle | None = None,
    settings: PackSettings | None = None,
) -> BuildResult:
    """Build a reproducible archive of *source_dir* merged over *dependency_dir*.

    Convenience wrapper around ``BuildPipeline(settings, oracle).build(...)``.
    """
    request = BuildRequest(
        source_dir=Path(source_dir),
        dependency_dir=Path(dependency_dir) if dependency_dir is not None else None,
        output_path=Path(output_path),
        precompile=precompile,
    )
    return BuildPipeline(settings=settings, oracle=oracle).build(request)
