"""Timestamp oracles — derive the one canonical timestamp of a build.

An oracle maps a stable identity (a tracked source path) to a single
``CanonicalTimestamp``.  Repeated calls against the same committed state
return the same value on any host.  No oracle ever falls back to the
current time: if nothing can be derived, ``OracleUnavailable`` is raised
and the caller either pins a value or aborts.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from detpack.config import PackSettings
from detpack.core.errors import OracleUnavailable
from detpack.models.timestamps import CanonicalTimestamp

logger = logging.getLogger(__name__)

SOURCE_DATE_EPOCH = "SOURCE_DATE_EPOCH"


@runtime_checkable
class TimestampOracle(Protocol):
    """Anything that can derive a canonical timestamp from an identity."""

    def derive(self, identity: Path) -> CanonicalTimestamp: ...


class GitTimestampOracle:
    """Committer time of the latest commit touching *identity*.

    Uses ``%ct`` (committer date, epoch seconds), which is independent of
    the local timezone and of checkout time.

    Parameters
    ----------
    git_executable:
        Name or path of the git binary.
    timeout:
        Seconds to wait for git before giving up.
    """

    def __init__(self, git_executable: str = "git", timeout: float = 30.0) -> None:
        self._git = git_executable
        self._timeout = timeout

    def derive(self, identity: Path) -> CanonicalTimestamp:
        target = Path(identity).resolve()
        if target.is_dir():
            cwd, pathspec = target, "."
        else:
            cwd, pathspec = target.parent, target.name
        if not cwd.is_dir():
            raise OracleUnavailable(f"No such path for git history: {identity}")

        cmd = [self._git, "log", "-1", "--format=%ct", "--", pathspec]
        try:
            proc = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise OracleUnavailable(f"git executable not found: {self._git}") from exc
        except subprocess.TimeoutExpired as exc:
            raise OracleUnavailable(f"git log timed out for {identity}") from exc

        if proc.returncode != 0:
            raise OracleUnavailable(
                f"git history unavailable for {identity}: {proc.stderr.strip()}"
            )
        out = proc.stdout.strip()
        if not out:
            raise OracleUnavailable(f"No commit touches {identity} (untracked?)")

        ts = CanonicalTimestamp.from_epoch(out)
        logger.debug("git oracle: %s -> %s", identity, ts)
        return ts


class EnvironmentTimestampOracle:
    """Reads ``SOURCE_DATE_EPOCH`` (reproducible-builds.org convention).

    The identity is ignored: whoever set the variable already chose it.
    """

    def __init__(
        self,
        variable: str = SOURCE_DATE_EPOCH,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._variable = variable
        self._environ = environ

    def derive(self, identity: Path) -> CanonicalTimestamp:
        environ = os.environ if self._environ is None else self._environ
        raw = environ.get(self._variable, "").strip()
        if not raw:
            raise OracleUnavailable(f"{self._variable} is not set")
        try:
            return CanonicalTimestamp.from_epoch(raw)
        except ValueError as exc:
            raise OracleUnavailable(f"Invalid {self._variable}: {raw!r}") from exc


class PinnedTimestampOracle:
    """Always returns the same, caller-supplied timestamp."""

    def __init__(self, value: CanonicalTimestamp | str | int) -> None:
        if isinstance(value, CanonicalTimestamp):
            self._value = value
        else:
            try:
                self._value = CanonicalTimestamp.parse(value)
            except ValueError as exc:
                raise OracleUnavailable(f"Invalid pinned timestamp: {value!r}") from exc

    @property
    def value(self) -> CanonicalTimestamp:
        return self._value

    def derive(self, identity: Path) -> CanonicalTimestamp:
        return self._value


class ChainedTimestampOracle:
    """Tries each oracle in order; the first success wins."""

    def __init__(self, oracles: Sequence[TimestampOracle]) -> None:
        if not oracles:
            raise ValueError("ChainedTimestampOracle needs at least one oracle")
        self._oracles = list(oracles)

    def derive(self, identity: Path) -> CanonicalTimestamp:
        reasons: list[str] = []
        for oracle in self._oracles:
            try:
                ts = oracle.derive(identity)
            except OracleUnavailable as exc:
                reasons.append(f"{type(oracle).__name__}: {exc}")
                continue
            logger.info("Canonical timestamp from %s: %s", type(oracle).__name__, ts)
            return ts
        raise OracleUnavailable(
            "No timestamp oracle could derive a value — " + "; ".join(reasons)
        )


def default_oracle(settings: PackSettings) -> TimestampOracle:
    """Build the oracle the settings describe.

    A pinned ``timestamp`` short-circuits everything.  Otherwise
    ``SOURCE_DATE_EPOCH`` then git history are consulted, with
    ``fallback_timestamp`` as the last resort when configured.
    """
    if settings.timestamp:
        return PinnedTimestampOracle(settings.timestamp)

    chain: list[TimestampOracle] = [EnvironmentTimestampOracle(), GitTimestampOracle()]
    if settings.fallback_timestamp:
        chain.append(PinnedTimestampOracle(settings.fallback_timestamp))
    return ChainedTimestampOracle(chain)
