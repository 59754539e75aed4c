"""``detpack inspect ARCHIVE`` — list entries and pinned metadata."""

from __future__ import annotations

import tarfile
import zipfile
import zlib
from pathlib import Path

import typer
from rich.console import Console

from detpack.core.archiver import read_entries
from detpack.core.hasher import sha256_base64, sha256_file
from detpack.report.renderer import BuildRenderer

console = Console()


def inspect_cmd(
    archive: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="A .zip or .tar.gz archive.",
    ),
) -> None:
    """Show every entry of ARCHIVE with its mode, time and digest."""
    try:
        manifest = read_entries(archive)
    except (ValueError, zipfile.BadZipFile, zlib.error, tarfile.TarError, OSError) as exc:
        console.print(f"[bold red]Cannot read archive:[/bold red] {exc}")
        raise typer.Exit(code=1)

    renderer = BuildRenderer(console=console)
    console.print(
        renderer.manifest_table(
            manifest,
            title=f"{archive.name} ({manifest.archive_format.value}, "
            f"{manifest.entry_count} entries)",
        )
    )
    console.print(f"[bold]sha256:[/bold] [cyan]{sha256_file(archive)}[/cyan]")
    console.print(f"[bold]base64:[/bold] [cyan]{sha256_base64(archive)}[/cyan]")
