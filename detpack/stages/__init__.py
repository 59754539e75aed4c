"""detpack pipeline stages — registry mapping stage_id to stage instance.

Usage::

    from detpack.stages import build_stages

    for stage in build_stages():
        stage.run_stage(run_context)
"""

from __future__ import annotations

from collections.abc import Callable

from detpack.models.stages import BUILD_STAGES
from detpack.stages.base import BaseStage
from detpack.stages.s0_timestamp import TimestampStage
from detpack.stages.s1_stage_tree import TreeStagingStage
from detpack.stages.s2_normalize import NormalizeStage
from detpack.stages.s3_precompile import PrecompileStage
from detpack.stages.s5_pack import PackStage
from detpack.stages.s6_finalize import FinalizeStage

# ---------------------------------------------------------------------------
# Stage registry: stage_id -> factory
# ---------------------------------------------------------------------------

STAGE_REGISTRY: dict[str, Callable[[], BaseStage]] = {
    "s0_timestamp": TimestampStage,
    "s1_stage_tree": TreeStagingStage,
    "s2_normalize": lambda: NormalizeStage("s2_normalize"),
    "s3_precompile": PrecompileStage,
    "s4_renormalize": lambda: NormalizeStage("s4_renormalize"),
    "s5_pack": PackStage,
    "s6_finalize": FinalizeStage,
}

# Execution order: a single linear pipeline.
STAGE_ORDER: list[str] = [definition.stage_id for definition in BUILD_STAGES]


def get_stage(stage_id: str) -> BaseStage:
    """Instantiate and return a stage by its ``stage_id``.

    Raises ``KeyError`` if the stage_id is not registered.
    """
    try:
        factory = STAGE_REGISTRY[stage_id]
    except KeyError:
        raise KeyError(
            f"Unknown stage_id {stage_id!r}. "
            f"Registered stages: {sorted(STAGE_REGISTRY.keys())}"
        ) from None
    return factory()


def build_stages() -> list[BaseStage]:
    """Fresh stage instances in execution order."""
    return [get_stage(sid) for sid in STAGE_ORDER]


__all__ = [
    "BaseStage",
    "STAGE_REGISTRY",
    "STAGE_ORDER",
    "build_stages",
    "get_stage",
    "TimestampStage",
    "TreeStagingStage",
    "NormalizeStage",
    "PrecompileStage",
    "PackStage",
    "FinalizeStage",
]
