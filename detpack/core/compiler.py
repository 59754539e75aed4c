"""Intermediate artifact generator — deterministic CPython bytecode.

A ``.pyc`` embeds its source file's mtime (timestamp mode) as a staleness
check, so generation must run on a tree the normalizer has already pinned.
Beyond that, the toolchain has its own ways to make output differ:

* an existing, "current-looking" ``.pyc`` is skipped by ``compileall``;
  here every cache is purged and every file is rewritten.
* ``SOURCE_DATE_EPOCH`` in the environment silently switches
  ``py_compile`` to hash-based invalidation; the mode is always explicit.
* string hash randomization changes the marshalled order of frozenset
  constants; the worker runs with ``PYTHONHASHSEED=0``.
* ``PYTHONPYCACHEPREFIX`` would move artifacts out of the tree; all
  ``PYTHON*`` variables are dropped from the worker environment.
* the embedded file name would be the scratch path; the worker stores the
  tree-relative path instead.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path

from detpack.config import PackSettings
from detpack.core.errors import CompilationFailed
from detpack.models.build import CompileReport

logger = logging.getLogger(__name__)

_WORKER = Path(__file__).with_name("_compile_worker.py")
CACHE_DIR_NAME = "__pycache__"


def strip_intermediate_artifacts(root: Path) -> int:
    """Remove every ``__pycache__`` directory under *root*.

    Returns the number of files removed.  A stripped tree packs to the same
    bytes as one that was never precompiled.
    """
    removed = 0
    for dirpath, dirnames, _ in os.walk(root):
        for name in list(dirnames):
            path = os.path.join(dirpath, name)
            if name != CACHE_DIR_NAME or os.path.islink(path):
                continue
            removed += sum(len(files) for _, _, files in os.walk(path))
            shutil.rmtree(path)
            dirnames.remove(name)
    if removed:
        logger.debug("Stripped %d cached artifacts under %s", removed, root)
    return removed


def _worker_env() -> dict[str, str]:
    env = {
        key: value
        for key, value in os.environ.items()
        if not key.startswith("PYTHON") and key != "SOURCE_DATE_EPOCH"
    }
    env["PYTHONHASHSEED"] = "0"
    return env


class BytecodeCompiler:
    """Runs the bytecode worker over a normalized tree.

    Parameters
    ----------
    python_executable:
        Interpreter whose bytecode format the archive should carry.
    optimize:
        ``py_compile`` optimization level (0, 1 or 2).
    invalidation_mode:
        ``timestamp``, ``checked-hash`` or ``unchecked-hash``.
    prefix:
        Optional directory prepended to embedded source names.
    timeout:
        Seconds before the worker is abandoned.
    """

    def __init__(
        self,
        python_executable: str,
        *,
        optimize: int = 0,
        invalidation_mode: str = "timestamp",
        prefix: str = "",
        timeout: float = 600,
    ) -> None:
        self.python_executable = python_executable
        self.optimize = optimize
        self.invalidation_mode = invalidation_mode
        self.prefix = prefix
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: PackSettings) -> BytecodeCompiler:
        return cls(
            settings.python_executable,
            optimize=settings.optimize,
            invalidation_mode=settings.invalidation_mode,
            prefix=settings.compile_prefix,
            timeout=settings.compile_timeout_seconds,
        )

    def generate(self, root: Path) -> CompileReport:
        """Regenerate bytecode for every source file under *root*.

        On any failure all artifacts from this run are removed before
        ``CompilationFailed`` propagates.
        """
        root = Path(root)
        purged = strip_intermediate_artifacts(root)

        cmd = [
            self.python_executable,
            "-B",
            "-s",
            str(_WORKER),
            str(root),
            "--invalidation-mode",
            self.invalidation_mode,
            "--optimize",
            str(self.optimize),
        ]
        if self.prefix:
            cmd += ["--prefix", self.prefix]

        logger.debug("Running bytecode worker: %s", cmd)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                env=_worker_env(),
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CompilationFailed(
                None, f"interpreter not found: {self.python_executable}"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            strip_intermediate_artifacts(root)
            raise CompilationFailed(None, f"timed out after {self.timeout}s") from exc

        try:
            payload = json.loads(proc.stdout.strip().splitlines()[-1])
        except (IndexError, json.JSONDecodeError):
            strip_intermediate_artifacts(root)
            raise CompilationFailed(
                None, proc.stderr.strip() or f"worker exited with {proc.returncode}"
            ) from None

        if not payload.get("ok"):
            strip_intermediate_artifacts(root)
            logger.error("Bytecode compilation rejected %s", payload.get("path"))
            raise CompilationFailed(payload.get("path"), payload.get("error", ""))

        report = CompileReport(
            compiled=payload.get("compiled", []),
            purged=purged,
            cache_tag=payload.get("cache_tag", ""),
            invalidation_mode=self.invalidation_mode,
        )
        logger.info(
            "Compiled %d source files (%s, %s)",
            len(report.compiled),
            report.cache_tag,
            report.invalidation_mode,
        )
        return report


def generate(root: Path, settings: PackSettings) -> CompileReport:
    """Module-level convenience wrapper around ``BytecodeCompiler.generate``."""
    return BytecodeCompiler.from_settings(settings).generate(root)
