"""Build stage models — the fixed, linear detpack pipeline."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StageState(str, Enum):
    """State of a single pipeline stage within one build."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StageDefinition(BaseModel):
    """Defines a pipeline stage and its display name."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str


class StageRecord(BaseModel):
    """Outcome of one stage run.

    Holds hashes and a short detail string, never a wall-clock value, so two
    builds of the same input produce identical records.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    state: StageState
    input_hash: str = ""
    output_hash: str = ""
    detail: str = ""


# The detpack pipeline, in execution order.
BUILD_STAGES: list[StageDefinition] = [
    StageDefinition(stage_id="s0_timestamp", display_name="Timestamp Oracle"),
    StageDefinition(stage_id="s1_stage_tree", display_name="Tree Staging"),
    StageDefinition(stage_id="s2_normalize", display_name="Timestamp Normalization"),
    StageDefinition(stage_id="s3_precompile", display_name="Bytecode Precompilation"),
    StageDefinition(stage_id="s4_renormalize", display_name="Timestamp Renormalization"),
    StageDefinition(stage_id="s5_pack", display_name="Archive Packing"),
    StageDefinition(stage_id="s6_finalize", display_name="Archive Finalization"),
]

STAGES_BY_ID: dict[str, StageDefinition] = {s.stage_id: s for s in BUILD_STAGES}
