"""intuneforge CLI — Typer-based command-line interface.

Provides the ``intuneforge`` command with subcommands for inspecting a
content archive and publishing it as a new or existing app.

All output uses Rich for formatted terminal display.
"""
