"""Tree stager — merge dependencies and sources into one scratch tree.

Dependencies are copied first, sources second, so on a path conflict the
source entry wins (last write per stage order).  Every shadowed dependency
path is logged and reported: silent shadowing is an easy bug to miss.

Only content and permission bits are copied.  Timestamps, ownership and
extended attributes (ACLs, provenance tags) are left behind, which is why
this does not use ``shutil.copytree``/``copy2``.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from detpack.core.errors import StagingFailed
from detpack.models.build import StagedTree

logger = logging.getLogger(__name__)


@contextmanager
def scratch_tree(base_dir: Path | None = None) -> Iterator[Path]:
    """Allocate a scratch directory, removed on every exit path."""
    if base_dir is not None:
        Path(base_dir).mkdir(parents=True, exist_ok=True)
    root = Path(tempfile.mkdtemp(prefix="detpack-", dir=base_dir))
    logger.debug("Allocated scratch tree %s", root)
    try:
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)
        logger.debug("Removed scratch tree %s", root)


class TreeStager:
    """Copies input trees into a scratch root.

    Parameters
    ----------
    exclude:
        fnmatch patterns matched against each entry's *name*; a matching
        directory is skipped with everything below it.
    skip:
        fnmatch patterns matched against each entry's absolute,
        symlink-resolved path.  Used to keep the build's own output out of
        an input tree that contains it.
    """

    def __init__(self, exclude: Sequence[str] = (), skip: Sequence[str] = ()) -> None:
        self._exclude = tuple(exclude)
        self._skip = tuple(skip)

    def stage(
        self,
        dependency_dir: Path | None,
        source_dir: Path,
        root: Path,
    ) -> StagedTree:
        """Merge *dependency_dir* then *source_dir* into *root*."""
        root = Path(root)
        if not root.is_dir():
            raise StagingFailed(f"scratch root does not exist: {root}")
        _require_dir(source_dir, "source")
        if dependency_dir is not None:
            _require_dir(dependency_dir, "dependency")

        owners: dict[str, str] = {}
        shadowed: list[str] = []
        try:
            if dependency_dir is not None:
                self._copy_tree(Path(dependency_dir), root, "dependency", owners, shadowed)
            self._copy_tree(Path(source_dir), root, "source", owners, shadowed)
        except OSError as exc:
            raise StagingFailed(f"{exc.filename or ''}: {exc.strerror or exc}") from exc

        file_count = len(owners)
        logger.info(
            "Staged %d files into %s (%d shadowed)",
            file_count,
            root,
            len(shadowed),
        )
        return StagedTree(root=root, file_count=file_count, shadowed=sorted(shadowed))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _excluded(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self._exclude)

    def _skipped(self, real_dir: str, name: str) -> bool:
        if not self._skip:
            return False
        path = os.path.join(real_dir, name)
        return any(fnmatch.fnmatchcase(path, pattern) for pattern in self._skip)

    def _copy_tree(
        self,
        src_root: Path,
        dst_root: Path,
        origin: str,
        owners: dict[str, str],
        shadowed: list[str],
    ) -> None:
        # Sorted walk keeps the shadow report and log output stable.
        stack: list[tuple[Path, str]] = [(src_root, "")]
        while stack:
            current, rel_dir = stack.pop()
            real_dir = os.path.realpath(current)
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
            for entry in reversed(entries):
                if self._excluded(entry.name):
                    logger.debug("Excluded %s/%s", rel_dir, entry.name)
                    continue
                if self._skipped(real_dir, entry.name):
                    logger.info("Skipped build output %s/%s", rel_dir, entry.name)
                    continue
                rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                dst = dst_root / rel
                if entry.is_dir(follow_symlinks=False):
                    if not (dst.is_dir() and not dst.is_symlink()):
                        self._clear(dst, rel, origin, owners, shadowed)
                        dst.mkdir()
                    # Directories merge; their contents decide conflicts.
                    stack.append((Path(entry.path), rel))
                    continue

                self._clear(dst, rel, origin, owners, shadowed)
                if entry.is_symlink():
                    os.symlink(os.readlink(entry.path), dst)
                else:
                    shutil.copyfile(entry.path, dst, follow_symlinks=False)
                    os.chmod(dst, entry.stat(follow_symlinks=False).st_mode & 0o777)
                owners[rel] = origin

    @staticmethod
    def _clear(
        dst: Path,
        rel: str,
        origin: str,
        owners: dict[str, str],
        shadowed: list[str],
    ) -> None:
        """Remove whatever occupies *dst*, recording a shadow if needed."""
        if not os.path.lexists(dst):
            return
        # Directories are never in owners; only dependencies create them
        # before sources are copied.
        previous = owners.get(rel, "dependency")
        if previous != origin:
            logger.warning("Source path %s shadows a dependency entry", rel)
            shadowed.append(rel)
        if dst.is_dir() and not dst.is_symlink():
            shutil.rmtree(dst)
            prefix = rel + "/"
            for key in [k for k in owners if k.startswith(prefix)]:
                del owners[key]
        else:
            dst.unlink()


def _require_dir(path: Path | None, label: str) -> None:
    if path is None or not Path(path).is_dir():
        raise StagingFailed(f"{label} directory not found: {path}")


def stage(
    dependency_dir: Path | None,
    source_dir: Path,
    root: Path,
    *,
    exclude: Sequence[str] = (),
    skip: Sequence[str] = (),
) -> StagedTree:
    """Module-level convenience wrapper around ``TreeStager.stage``."""
    return TreeStager(exclude, skip).stage(dependency_dir, source_dir, root)
