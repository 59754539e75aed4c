"""Canonical hashing helpers for stage records and archive digests."""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK_SIZE = 1 << 16


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Return the SHA-256 hex digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def sha256_base64(path: Path) -> str:
    """Return the base64-encoded SHA-256 of a file.

    This is the form infrastructure tooling compares for uploaded bundles
    (e.g. a function's ``source_code_hash``).
    """
    return base64.b64encode(bytes.fromhex(sha256_file(path))).decode("ascii")


def compute_input_hash(stage_id: str, inputs: dict[str, Any]) -> str:
    """SHA-256 of canonical(stage_id + sorted inputs)."""
    payload = {"stage_id": stage_id, "inputs": inputs}
    return sha256_hex(canonical_json_bytes(payload))


def compute_output_hash(stage_id: str, outputs: dict[str, Any]) -> str:
    """SHA-256 of canonical(stage_id + sorted outputs)."""
    payload = {"stage_id": stage_id, "outputs": outputs}
    return sha256_hex(canonical_json_bytes(payload))
