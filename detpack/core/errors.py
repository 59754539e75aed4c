"""Build error taxonomy.

Every failure the pipeline can report is a ``BuildError``.  None of them is
retryable: the pipeline is a pure function of its inputs, so the only
recovery is to change the inputs and rebuild.  Each class carries the exit
code the CLI uses for it.
"""

from __future__ import annotations

from typing import ClassVar


class BuildError(RuntimeError):
    """Base class for all fatal pipeline failures."""

    exit_code: ClassVar[int] = 1


class OracleUnavailable(BuildError):
    """Raised when no canonical timestamp can be derived for the input."""

    exit_code: ClassVar[int] = 3


class StagingFailed(BuildError):
    """Raised when the scratch tree cannot be assembled."""

    exit_code: ClassVar[int] = 4

    def __init__(self, reason: str) -> None:
        super().__init__(f"Staging failed: {reason}")
        self.reason = reason


class CompilationFailed(BuildError):
    """Raised when the toolchain rejects a source file.

    ``path`` is the tree-relative path of the offending file, or ``None``
    when the toolchain itself could not be run.
    """

    exit_code: ClassVar[int] = 5

    def __init__(self, path: str | None, message: str = "") -> None:
        where = path or "<toolchain>"
        text = f"Compilation failed: {where}"
        if message:
            text += f": {message}"
        super().__init__(text)
        self.path = path
        self.message = message


class PackingFailed(BuildError):
    """Raised when the archive cannot be written or published."""

    exit_code: ClassVar[int] = 6

    def __init__(self, reason: str) -> None:
        super().__init__(f"Packing failed: {reason}")
        self.reason = reason
