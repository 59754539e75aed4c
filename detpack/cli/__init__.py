"""detpack CLI — Typer-based command-line interface.

Provides the ``detpack`` command with subcommands for building archives,
deriving the canonical timestamp, inspecting archives and comparing two
builds.

All output uses Rich for formatted terminal display; logs go to stderr.
"""
