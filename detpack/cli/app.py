"""Main Typer application — imports and registers all CLI commands.

Entry point: ``detpack`` (configured via pyproject.toml project.scripts).

Commands: build, timestamp, inspect, compare.
"""

from __future__ import annotations

import logging

import typer

from detpack.cli.commands.build import build_cmd
from detpack.cli.commands.compare import compare_cmd
from detpack.cli.commands.inspect import inspect_cmd
from detpack.cli.commands.timestamp import timestamp_cmd
from detpack.config import PackSettings

app = typer.Typer(
    name="detpack",
    help="detpack: byte-for-byte reproducible deployment archives.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="build", help="Build a reproducible archive.")(build_cmd)
app.command(name="timestamp", help="Show the canonical timestamp for a source tree.")(
    timestamp_cmd
)
app.command(name="inspect", help="List an archive's entries and pinned metadata.")(
    inspect_cmd
)
app.command(name="compare", help="Compare two archives byte for byte.")(compare_cmd)


@app.callback()
def configure(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ...). Defaults to DETPACK_LOG_LEVEL.",
    ),
) -> None:
    """Configure stderr logging before any command runs."""
    level = getattr(logging, (log_level or PackSettings().log_level).upper(), logging.INFO)
    logging.basicConfig(format="%(levelname)-8s %(name)s: %(message)s")
    logging.getLogger("detpack").setLevel(level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
