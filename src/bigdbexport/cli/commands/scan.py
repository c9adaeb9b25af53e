"""
Scan command - inspect archives offline.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from bigdbexport.core.archive.scanner import ArchiveInfo, MalformedArchive, read_archive_keys

console = Console()
err_console = Console(stderr=True)


def scan_command(
    archive: Path = typer.Argument(..., help="Path to a BigDB export .zip archive"),
    count_only: bool = typer.Option(
        False,
        "--count",
        "-n",
        help="Only print the number of keys",
    ),
) -> None:
    """List the record keys found in a BigDB export archive.

    No connection to the remote store is made.

    Examples:
        bigdbexport scan archives/mygame_PlayerObjects_db1_2024.zip
        bigdbexport scan archives/mygame_PlayerObjects_db1_2024.zip --count
    """
    try:
        info = ArchiveInfo.from_path(archive)
        keys = read_archive_keys(archive)
    except MalformedArchive as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    duplicates = sum(n - 1 for n in Counter(keys).values() if n > 1)

    if count_only:
        console.print(str(len(keys)), highlight=False)
        return

    table = Table(title=f"{info.table} ({info.game_id} / {info.database_id})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Key", style="cyan")

    for index, key in enumerate(keys, start=1):
        table.add_row(str(index), key)

    console.print(table)
    console.print(f"[bold]{len(keys)}[/bold] keys", highlight=False)
    if duplicates:
        console.print(f"[yellow]{duplicates} duplicate keys[/yellow]")
