"""Rich terminal renderer for build reports.

Turns a ``BuildResult`` (or a bare list of ``StageRecord``) and an
``ArchiveManifest`` into Rich renderables.

Color scheme
------------
- green     : PASSED
- red       : FAILED
- dim       : SKIPPED
"""

from __future__ import annotations

import stat
from collections.abc import Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from detpack.models.archive import ArchiveManifest, EntryKind
from detpack.models.build import BuildResult
from detpack.models.stages import StageRecord, StageState

# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[StageState, str] = {
    StageState.PASSED: "bold green",
    StageState.FAILED: "bold red",
    StageState.SKIPPED: "dim",
}

_STATE_ICONS: dict[StageState, str] = {
    StageState.PASSED: "[green]PASSED[/green]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.SKIPPED: "[dim]SKIPPED[/dim]",
}


class BuildRenderer:
    """Renders build results and archive listings as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Build report
    # ------------------------------------------------------------------

    def render_result(self, result: BuildResult) -> Panel:
        """Render a successful build as a Panel with the stage table."""
        table = self.stage_table(result.stages)

        summary_parts: list[str] = [
            f"[bold]Archive:[/bold] {result.archive_path}",
            f"[bold]Format:[/bold] {result.archive_format.value}",
            f"[bold]Entries:[/bold] {result.manifest.entry_count}",
            f"[bold]Size:[/bold] {result.size_bytes} bytes",
            f"[bold]Timestamp:[/bold] {result.timestamp}",
        ]
        if result.precompiled:
            summary_parts.append(f"[bold]Compiled:[/bold] {result.compiled_count}")
        if result.shadowed:
            summary_parts.append(
                f"[yellow][bold]Shadowed:[/bold] {len(result.shadowed)}[/yellow]"
            )

        digest_lines = [
            f"[bold]sha256:[/bold] [cyan]{result.sha256}[/cyan]",
            f"[bold]base64:[/bold] [cyan]{result.sha256_base64}[/cyan]",
        ]

        panel_content = Group(
            table,
            Text(""),
            Text.from_markup("  |  ".join(summary_parts)),
            *(Text.from_markup(line) for line in digest_lines),
        )
        return Panel(
            panel_content,
            title="[bold]detpack build[/bold]",
            border_style="green",
            padding=(1, 2),
        )

    def stage_table(self, records: Sequence[StageRecord]) -> Table:
        """Build a Rich Table of stage records."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)

        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=24)
        table.add_column("State", min_width=10, justify="center")
        table.add_column("Output hash", width=14)
        table.add_column("Details", min_width=20)

        for i, record in enumerate(records):
            name_style = _STATE_STYLES.get(record.state, "")
            table.add_row(
                str(i),
                f"[{name_style}]{record.display_name}[/{name_style}]",
                _STATE_ICONS.get(record.state, record.state.value),
                record.output_hash[:12] or "[dim]-[/dim]",
                record.detail or "[dim]-[/dim]",
            )

        return table

    # ------------------------------------------------------------------
    # Archive listing
    # ------------------------------------------------------------------

    def manifest_table(self, manifest: ArchiveManifest, *, title: str = "") -> Table:
        """Table of every entry with its pinned metadata."""
        table = Table(
            title=title or None,
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        table.add_column("Path", min_width=30)
        table.add_column("Kind", width=9)
        table.add_column("Mode", width=10)
        table.add_column("Size", justify="right", width=10)
        table.add_column("Stored time", width=20)
        table.add_column("Method", width=8)
        table.add_column("sha256", width=14)

        for entry in manifest.entries:
            table.add_row(
                entry.path,
                entry.kind.value,
                _mode_string(entry.kind, entry.mode),
                str(entry.size),
                entry.stored_time,
                entry.method,
                entry.sha256[:12] or "[dim]-[/dim]",
            )

        return table

    def print_result(self, result: BuildResult) -> None:
        self.console.print(self.render_result(result))


def _mode_string(kind: EntryKind, mode: int) -> str:
    type_bits = {
        EntryKind.FILE: stat.S_IFREG,
        EntryKind.DIRECTORY: stat.S_IFDIR,
        EntryKind.SYMLINK: stat.S_IFLNK,
    }[kind]
    return stat.filemode(type_bits | mode)
