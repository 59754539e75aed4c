"""Timestamp normalizer — pin every mtime in a tree to one value.

Runs twice per build: before bytecode generation (``py_compile`` embeds the
source mtime in each ``.pyc``) and after it (so the generated files and the
directories that received them carry the same value).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from detpack.models.timestamps import CanonicalTimestamp

logger = logging.getLogger(__name__)

# Not every platform can set a symlink's own times.
_UTIME_NOFOLLOW = os.utime in os.supports_follow_symlinks


def normalize(root: Path, timestamp: CanonicalTimestamp) -> int:
    """Set atime and mtime of every entry under *root* (and *root*) to *timestamp*.

    Walks bottom-up so a directory is stamped after its children.
    Returns the number of entries touched.  Idempotent.
    """
    times = (timestamp.epoch, timestamp.epoch)
    count = 0
    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        # Real subdirectories are stamped when they come up as dirpath;
        # symlinks to directories show up in dirnames and are never walked.
        linked_dirs = [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]
        for name in filenames + linked_dirs:
            path = os.path.join(dirpath, name)
            if os.path.islink(path):
                if not _UTIME_NOFOLLOW:
                    continue
                os.utime(path, times, follow_symlinks=False)
            else:
                os.utime(path, times)
            count += 1
        os.utime(dirpath, times)
        count += 1

    logger.debug("Normalized %d entries under %s to %s", count, root, timestamp)
    return count
