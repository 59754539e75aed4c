"""Stage 0 — Timestamp Oracle.

Derives the build's canonical timestamp from the source directory's
identity and stores it on the run context.  Every later stage reads it from
there; no stage reads the clock.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from detpack.core.errors import BuildError, OracleUnavailable
from detpack.core.oracle import TimestampOracle
from detpack.models.build import BuildRequest
from detpack.stages.base import BaseStage

logger = logging.getLogger(__name__)


class TimestampStage(BaseStage):
    """Stage 0: resolve the canonical timestamp."""

    failure_type: ClassVar[type[BuildError]] = OracleUnavailable

    @property
    def stage_id(self) -> str:
        return "s0_timestamp"

    @property
    def display_name(self) -> str:
        return "Timestamp Oracle"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        request: BuildRequest = run_context["request"]
        oracle: TimestampOracle = run_context["oracle"]

        timestamp = oracle.derive(request.source_dir)
        run_context["timestamp"] = timestamp

        return {
            "epoch": timestamp.epoch,
            "summary": timestamp.isoformat,
        }
