"""Abstract base stage with an enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only ``execute()``.
The ``run_stage()`` wrapper is **not overridable** — it enforces the canonical
lifecycle ordering:

    compute_input_hash -> execute -> compute_output_hash -> record

Failures are normalized on the way out: a ``BuildError`` propagates as is,
anything else is wrapped in the stage's own ``failure_type`` with the
original exception chained.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, ClassVar, final

from detpack.core.errors import BuildError
from detpack.core.hasher import compute_input_hash, compute_output_hash
from detpack.models.stages import StageRecord, StageState

logger = logging.getLogger(__name__)


class BaseStage(abc.ABC):
    """Abstract base for all detpack pipeline stages.

    Subclasses **must** implement:
        * ``stage_id``   — unique identifier (e.g. ``"s5_pack"``).
        * ``display_name`` — human-readable name for reports.
        * ``execute(run_context)`` — the stage's core logic.

    Subclasses **may** override:
        * ``failure_type`` / ``wrap_failure()`` — how unexpected exceptions
          become a ``BuildError``.
        * ``is_enabled(run_context)`` — return ``False`` to skip.

    Subclasses **must not** override ``run_stage()``.
    """

    failure_type: ClassVar[type[BuildError]] = BuildError

    # ------------------------------------------------------------------
    # Abstract interface: subclasses implement these
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def stage_id(self) -> str:
        """Unique stage identifier (e.g. ``'s5_pack'``)."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Human-readable display name."""
        ...

    @abc.abstractmethod
    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        """Execute the stage's core logic.

        Parameters
        ----------
        run_context:
            Mutable dict carrying build-wide state: settings, the canonical
            timestamp, scratch root, prior stage results.

        Returns
        -------
        dict:
            JSON-serializable result appropriate to the stage's purpose.
        """
        ...

    def is_enabled(self, run_context: dict[str, Any]) -> bool:
        return True

    def wrap_failure(self, exc: Exception) -> BuildError:
        """Translate an unexpected exception into this stage's error class."""
        return self.failure_type(str(exc))

    # ------------------------------------------------------------------
    # Lifecycle: NOT overridable
    # ------------------------------------------------------------------

    @final
    def run_stage(self, run_context: dict[str, Any]) -> dict[str, Any]:
        """Execute the full stage lifecycle.  **Do not override.**

        Returns the result dict produced by ``execute()``, augmented with
        ``_input_hash`` and ``_output_hash`` keys.
        """
        input_hash = self._compute_input_hash(run_context)

        if not self.is_enabled(run_context):
            logger.info("%s [%s] skipped", self.display_name, self.stage_id)
            result: dict[str, Any] = {"skipped": True}
            self._record(run_context, result, input_hash, "", StageState.SKIPPED)
            return result

        logger.debug(
            "%s [%s] input_hash=%s", self.display_name, self.stage_id, input_hash
        )
        try:
            result = self.execute(run_context)
        except BuildError as exc:
            logger.error("%s [%s] failed: %s", self.display_name, self.stage_id, exc)
            self._record(run_context, {}, input_hash, "", StageState.FAILED, str(exc))
            raise
        except Exception as exc:
            logger.error("%s [%s] failed: %s", self.display_name, self.stage_id, exc)
            self._record(run_context, {}, input_hash, "", StageState.FAILED, str(exc))
            raise self.wrap_failure(exc) from exc

        output_hash = self._compute_output_hash(result)
        self._record(run_context, result, input_hash, output_hash, StageState.PASSED)

        result["_input_hash"] = input_hash
        result["_output_hash"] = output_hash
        return result

    # ------------------------------------------------------------------
    # Lifecycle helpers (not overridable)
    # ------------------------------------------------------------------

    @final
    def _compute_input_hash(self, run_context: dict[str, Any]) -> str:
        """SHA-256 of canonical(stage_id + prior output hashes)."""
        inputs: dict[str, Any] = {
            "prior_output_hashes": {
                sid: res.get("_output_hash", "")
                for sid, res in run_context.get("stage_results", {}).items()
            },
        }
        return compute_input_hash(self.stage_id, inputs)

    @final
    def _compute_output_hash(self, result: dict[str, Any]) -> str:
        """SHA-256 of canonical(stage_id + result), internal keys stripped."""
        hashable = {k: v for k, v in result.items() if not k.startswith("_")}
        return compute_output_hash(self.stage_id, hashable)

    @final
    def _record(
        self,
        run_context: dict[str, Any],
        result: dict[str, Any],
        input_hash: str,
        output_hash: str,
        state: StageState,
        detail: str = "",
    ) -> None:
        """Store the result and a ``StageRecord`` in the run context."""
        if state is StageState.PASSED:
            run_context.setdefault("stage_results", {})[self.stage_id] = {
                **result,
                "_output_hash": output_hash,
            }
            detail = detail or str(result.get("summary", ""))

        run_context.setdefault("stage_records", []).append(
            StageRecord(
                stage_id=self.stage_id,
                display_name=self.display_name,
                state=state,
                input_hash=input_hash,
                output_hash=output_hash,
                detail=detail,
            )
        )
        logger.info(
            "%s [%s] %s — input=%s output=%s",
            self.display_name,
            self.stage_id,
            state.value,
            input_hash[:12],
            output_hash[:12] or "-",
        )

    # ------------------------------------------------------------------
    # Repr
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"
