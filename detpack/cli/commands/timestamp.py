"""``detpack timestamp SOURCE`` — show the canonical timestamp."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from detpack.config import PackSettings
from detpack.core.errors import OracleUnavailable
from detpack.core.oracle import default_oracle

console = Console()


def timestamp_cmd(
    source: Path = typer.Argument(
        ...,
        help="Tracked path whose history pins the timestamp.",
    ),
    timestamp: str = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="Pin the value instead of deriving it.",
    ),
    epoch_only: bool = typer.Option(
        False,
        "--epoch",
        help="Print only the integer epoch (for SOURCE_DATE_EPOCH).",
    ),
) -> None:
    """Derive the canonical timestamp a build of SOURCE would use."""
    settings = PackSettings(timestamp=timestamp) if timestamp else PackSettings()

    try:
        value = default_oracle(settings).derive(source)
    except OracleUnavailable as exc:
        console.print(f"[bold red]OracleUnavailable:[/bold red] {exc}")
        raise typer.Exit(code=exc.exit_code)

    if epoch_only:
        console.print(str(value.epoch))
        return

    console.print(
        Panel(
            f"[bold]ISO-8601:[/bold] {value.isoformat}\n"
            f"[bold]Epoch:[/bold]    {value.epoch}\n"
            f"[bold]Touch:[/bold]    {value.touch_format}",
            title=f"[bold]Canonical timestamp[/bold] — {source}",
            border_style="cyan",
        )
    )
