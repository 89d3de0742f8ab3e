"""``intuneforge inspect ARCHIVE`` — show what an archive would publish.

Reads the metadata record of a packed archive (or an extracted
directory) and prints it.  Nothing is sent anywhere.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from intuneforge.core.archive import ArchiveMetadataReader
from intuneforge.core.errors import IntuneForgeError

console = Console()


def inspect_cmd(
    archive: Path = typer.Argument(
        ...,
        help="Path to the .intunewin archive or its extracted directory.",
    ),
) -> None:
    """Print the metadata record of a content archive."""
    reader = ArchiveMetadataReader()
    try:
        with reader.extracted(archive) as package:
            metadata = package.metadata
            payload_name = package.payload_path.name
    except IntuneForgeError as exc:
        console.print(f"[bold red]Cannot read archive:[/bold red] {exc}")
        raise typer.Exit(code=1)

    enc = metadata.encryption_info
    table = Table(title=f"Archive: {archive.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Name", metadata.name or "[dim]-[/dim]")
    table.add_row("File name", metadata.file_name)
    table.add_row("Payload", payload_name)
    table.add_row("Setup file", metadata.setup_file or "[dim]-[/dim]")
    table.add_row("Unencrypted size", f"{metadata.unencrypted_content_size:,} bytes")
    table.add_row("Tool version", metadata.tool_version or "[dim]-[/dim]")
    table.add_row("Encryption profile", enc.profile_identifier)
    table.add_row("Digest algorithm", enc.file_digest_algorithm)
    console.print(table)
