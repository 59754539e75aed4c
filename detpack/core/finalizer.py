"""Archive finalizer — pin the output file's own metadata and publish it.

The archive is written under a temporary name next to its final location,
stamped with the canonical timestamp, then atomically renamed.  Nothing ever
appears under the final name unless every stage succeeded; an interrupted
build leaves at most a ``.partial`` file behind.
"""

from __future__ import annotations

import glob
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from detpack.core.errors import PackingFailed
from detpack.models.timestamps import CanonicalTimestamp

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"
DIGEST_SUFFIX = ".sha256"


def finalize(archive_path: Path, timestamp: CanonicalTimestamp) -> None:
    """Set the file's atime and mtime to the canonical timestamp."""
    try:
        os.utime(archive_path, (timestamp.epoch, timestamp.epoch))
    except OSError as exc:
        raise PackingFailed(f"cannot set timestamps on {archive_path}: {exc}") from exc
    logger.debug("Finalized %s at %s", archive_path, timestamp)


def publish(temporary: Path, final: Path) -> Path:
    """Atomically move *temporary* to *final* (same directory, same filesystem).

    ``os.replace`` keeps the finalized mtime.
    """
    try:
        os.replace(temporary, final)
    except OSError as exc:
        raise PackingFailed(f"cannot publish {final}: {exc}") from exc
    logger.info("Published %s", final)
    return Path(final)


@contextmanager
def pending_output(final: Path) -> Iterator[Path]:
    """Yield a unique temporary path beside *final*; remove it on exit.

    After a successful ``publish`` the temporary path no longer exists and
    the cleanup is a no-op.
    """
    final = Path(final)
    try:
        final.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(
            prefix=f".{final.name}.", suffix=PARTIAL_SUFFIX, dir=final.parent
        )
    except OSError as exc:
        raise PackingFailed(f"cannot create output in {final.parent}: {exc}") from exc
    os.close(fd)
    temporary = Path(name)
    try:
        yield temporary
    finally:
        temporary.unlink(missing_ok=True)


def digest_path_for(final: Path) -> Path:
    """The digest sidecar published next to *final*."""
    final = Path(final)
    return final.with_name(final.name + DIGEST_SUFFIX)


def output_patterns(final: Path) -> list[str]:
    """Absolute glob patterns for every file a build writes beside *final*.

    Covers the archive, its digest sidecar and the ``.partial`` temporaries
    of both.  The directory part is symlink-resolved so callers can match
    against ``os.path.realpath`` of the entries they walk.
    """
    final = Path(final)
    parent = glob.escape(os.path.realpath(final.parent))
    patterns: list[str] = []
    for name in (final.name, digest_path_for(final).name):
        escaped = glob.escape(name)
        patterns.append(os.path.join(parent, escaped))
        patterns.append(os.path.join(parent, f".{escaped}.*{PARTIAL_SUFFIX}"))
    return patterns
