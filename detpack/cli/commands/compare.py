"""``detpack compare A B`` — are two builds the same bytes?

Exits 0 when the archives are byte-identical and 1 otherwise.  When they
differ, the per-entry differences are listed to help locate the source of
nondeterminism.
"""

from __future__ import annotations

import tarfile
import zipfile
import zlib
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from detpack.core.archiver import read_entries
from detpack.core.hasher import sha256_file
from detpack.models.archive import ArchiveManifest

console = Console()

_COMPARED_FIELDS = ("kind", "mode", "size", "sha256", "stored_time", "method")


def diff_manifests(
    left: ArchiveManifest, right: ArchiveManifest
) -> list[tuple[str, str, str, str]]:
    """Return ``(path, field, left, right)`` for every differing attribute.

    Entry order counts: if both sides hold the same paths in a different
    order, one ``<order>`` row is reported.
    """
    rows: list[tuple[str, str, str, str]] = []
    left_paths = set(left.paths)
    right_paths = set(right.paths)

    for path in sorted(left_paths | right_paths):
        a = left.get(path)
        b = right.get(path)
        if a is None:
            rows.append((path, "<presence>", "missing", "present"))
            continue
        if b is None:
            rows.append((path, "<presence>", "present", "missing"))
            continue
        for field in _COMPARED_FIELDS:
            va, vb = getattr(a, field), getattr(b, field)
            if va != vb:
                rows.append((path, field, _display(field, va), _display(field, vb)))

    if left_paths == right_paths and left.paths != right.paths:
        rows.append(("*", "<order>", "", ""))
    return rows


def _display(field: str, value: object) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if field == "mode":
        return oct(value)
    return str(value)


def compare_cmd(
    first: Path = typer.Argument(..., exists=True, dir_okay=False, help="First archive."),
    second: Path = typer.Argument(..., exists=True, dir_okay=False, help="Second archive."),
) -> None:
    """Compare two archives byte for byte and entry by entry."""
    digest_a = sha256_file(first)
    digest_b = sha256_file(second)

    if digest_a == digest_b:
        console.print(f"[bold green]Identical[/bold green] sha256 {digest_a}")
        return

    console.print("[bold red]Archives differ[/bold red]")
    console.print(f"  {first}: {digest_a}")
    console.print(f"  {second}: {digest_b}")

    try:
        rows = diff_manifests(read_entries(first), read_entries(second))
    except (ValueError, zipfile.BadZipFile, zlib.error, tarfile.TarError, OSError) as exc:
        console.print(f"[dim]Entry comparison unavailable: {exc}[/dim]")
        raise typer.Exit(code=1)

    if not rows:
        console.print("[yellow]Entries match; the difference is in archive framing.[/yellow]")
    else:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Path", min_width=30)
        table.add_column("Field", width=12)
        table.add_column(first.name)
        table.add_column(second.name)
        for row in rows:
            table.add_row(*row)
        console.print(table)

    raise typer.Exit(code=1)
