"""``detpack build SOURCE --output PATH`` — run the full pipeline.

Command-line options override the matching ``DETPACK_*`` settings.  A
failing build exits with the failing stage's error code and publishes
nothing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from detpack.config import PackSettings
from detpack.core.errors import BuildError
from detpack.core.pipeline import build
from detpack.models.archive import ArchiveFormat
from detpack.report.renderer import BuildRenderer

console = Console()


def build_cmd(
    source: Path = typer.Argument(
        ...,
        help="Source directory to package.",
    ),
    output: Path = typer.Option(
        ...,
        "--output",
        "-o",
        help="Path of the archive to publish.",
    ),
    deps: Path = typer.Option(
        None,
        "--deps",
        "-d",
        help="Directory of already-installed dependencies to merge under the source.",
    ),
    precompile: bool = typer.Option(
        False,
        "--precompile/--no-precompile",
        help="Generate deterministic bytecode before packing.",
    ),
    timestamp: str = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="Pin the canonical timestamp (@EPOCH, [CC]YYMMDDhhmm[.ss] or ISO-8601).",
    ),
    archive_format: ArchiveFormat = typer.Option(
        None,
        "--format",
        "-f",
        help="Archive format.",
    ),
    compression_level: int = typer.Option(
        None,
        "--compression-level",
        min=0,
        max=9,
        help="Deflate/gzip compression level.",
    ),
    python: str = typer.Option(
        None,
        "--python",
        help="Interpreter used to generate bytecode.",
    ),
) -> None:
    """Build a byte-for-byte reproducible archive of SOURCE."""
    overrides: dict[str, Any] = {
        "timestamp": timestamp,
        "archive_format": archive_format,
        "compression_level": compression_level,
        "python_executable": python,
    }
    settings = PackSettings(**{k: v for k, v in overrides.items() if v is not None})

    try:
        result = build(source, deps, output, precompile, settings=settings)
    except BuildError as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
        console.print(f"[dim]Nothing was published to {output}.[/dim]")
        raise typer.Exit(code=exc.exit_code)

    BuildRenderer(console=console).print_result(result)
