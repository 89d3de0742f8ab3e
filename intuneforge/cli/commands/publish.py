"""``intuneforge publish ARCHIVE`` — publish an archive as a Win32 app.

Creates the app (or, with ``--app-id``, reuses an existing one), uploads
the payload as a new content version and commits it.  On failure the
created app is removed again and the command exits with status 1.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from intuneforge.config import PublishSettings
from intuneforge.core.errors import IntuneForgeError
from intuneforge.core.publisher import AppPublisher
from intuneforge.models.apps import ApplicationRecord

console = Console()


async def _publish(
    settings: PublishSettings,
    descriptor: ApplicationRecord,
    archive: Path,
    icon: Path | None,
) -> ApplicationRecord:
    async with AppPublisher.from_settings(settings) as publisher:
        return await publisher.publish_archive(descriptor, archive, icon)


def publish_cmd(
    archive: Path = typer.Argument(
        ...,
        help="Path to the .intunewin archive or its extracted directory.",
    ),
    name: str = typer.Option(..., "--name", "-n", help="Display name of the app."),
    publisher: str = typer.Option(..., "--publisher", "-p", help="Publisher of the app."),
    description: str = typer.Option("", "--description", "-d", help="App description."),
    icon: Optional[Path] = typer.Option(None, "--icon", help="PNG icon for the app."),
    app_id: Optional[str] = typer.Option(
        None,
        "--app-id",
        help="Publish new content to this existing app instead of creating one.",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        envvar="INTUNEFORGE_TOKEN",
        help="Bearer token for the management API.",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        min=1,
        help="Block uploads in flight at once (default from settings).",
    ),
) -> None:
    """Publish a content archive and print the committed version."""
    overrides: dict = {}
    if token:
        overrides["token"] = token
    if concurrency is not None:
        overrides["max_upload_concurrency"] = concurrency
    try:
        settings = PublishSettings(**overrides)
        descriptor = ApplicationRecord(
            id=app_id,
            display_name=name,
            publisher=publisher,
            description=description,
        )
    except ValidationError as exc:
        console.print(f"[bold red]Invalid settings:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(f"[bold cyan]Publishing {archive} as '{name}'...[/bold cyan]")
    try:
        app = asyncio.run(_publish(settings, descriptor, archive, icon))
    except IntuneForgeError as exc:
        console.print(f"[bold red]Publish failed:[/bold red] {exc}")
        if exc.cleanup_error is not None:
            console.print(f"[bold red]Cleanup failed as well:[/bold red] {exc.cleanup_error}")
        raise typer.Exit(code=1)

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Publish complete![/bold green]",
                "",
                f"[bold]App ID:[/bold]          {app.id}",
                f"[bold]Display name:[/bold]    {app.display_name}",
                f"[bold]Content version:[/bold] {app.committed_content_version}",
            ]),
            title="[bold]Win32 App[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
