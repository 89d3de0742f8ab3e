"""Main Typer application — imports and registers all CLI commands.

Entry point: ``intuneforge`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import logging

import typer

from intuneforge import __version__
from intuneforge.cli.commands.inspect_cmd import inspect_cmd
from intuneforge.cli.commands.publish import publish_cmd
from intuneforge.config import PublishSettings

app = typer.Typer(
    name="intuneforge",
    help="intuneforge: publish packaged Win32 apps to Intune.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging before any command runs."""
    level = "DEBUG" if verbose else PublishSettings().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
app.command(name="inspect", help="Show the metadata of a content archive.")(inspect_cmd)
app.command(name="publish", help="Publish a content archive as a Win32 app.")(publish_cmd)


@app.command(name="version", help="Print the intuneforge version.")
def version_cmd() -> None:
    """Print the installed version."""
    typer.echo(__version__)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
