"""Stage 6 — Archive Finalization.

Stamps the pending archive (and its digest sidecar) with the canonical
timestamp, then publishes both under their final names.  The archive is
published first so a sidecar never describes a file that is not there.

A sidecar target that cannot be replaced fails the build before the archive
is touched.  If the sidecar publish still fails afterwards, the new archive
is withdrawn along with any stale sidecar.  Building without a sidecar
removes one left by an earlier build.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, ClassVar

from detpack.config import PackSettings
from detpack.core.errors import BuildError, PackingFailed
from detpack.core.finalizer import digest_path_for, finalize, pending_output, publish
from detpack.core.hasher import sha256_base64, sha256_file
from detpack.models.build import BuildRequest
from detpack.stages.base import BaseStage

logger = logging.getLogger(__name__)


class FinalizeStage(BaseStage):
    """Stage 6: pin output metadata and publish atomically."""

    failure_type: ClassVar[type[BuildError]] = PackingFailed

    @property
    def stage_id(self) -> str:
        return "s6_finalize"

    @property
    def display_name(self) -> str:
        return "Archive Finalization"

    def execute(self, run_context: dict[str, Any]) -> dict[str, Any]:
        request: BuildRequest = run_context["request"]
        settings: PackSettings = run_context["settings"]
        timestamp = run_context["timestamp"]
        pending = run_context["pending_path"]
        final = request.output_path
        sidecar = digest_path_for(final)

        finalize(pending, timestamp)
        digest = sha256_file(pending)
        digest_b64 = sha256_base64(pending)
        size = pending.stat().st_size

        digest_path = None
        if settings.write_digest:
            _require_replaceable(final)
            _require_replaceable(sidecar)
            with pending_output(sidecar) as pending_digest:
                pending_digest.write_text(digest_b64, encoding="ascii")
                finalize(pending_digest, timestamp)
                publish(pending, final)
                try:
                    publish(pending_digest, sidecar)
                except PackingFailed:
                    logger.error("Withdrawing %s: its digest could not be published", final)
                    final.unlink(missing_ok=True)
                    _remove_stale(sidecar)
                    raise
            digest_path = sidecar
        else:
            publish(pending, final)
            _remove_stale(sidecar)

        run_context["archive_digest"] = (digest, digest_b64, size)
        run_context["digest_path"] = digest_path
        logger.info("Archive %s sha256=%s", request.output_path, digest)

        return {
            "sha256": digest,
            "sha256_base64": digest_b64,
            "size_bytes": size,
            "digest_file": digest_path.name if digest_path else "",
            "summary": f"sha256 {digest[:16]}",
        }


def _require_replaceable(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        raise PackingFailed(f"cannot publish {path}: a directory is in the way")


def _remove_stale(sidecar: Path) -> None:
    if sidecar.is_symlink() or sidecar.is_file():
        sidecar.unlink()
        logger.info("Removed stale digest %s", sidecar)
