"""
Export command - the full migration run.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from bigdbexport.core.config.loader import ConfigError, build_credentials, load_app_config
from bigdbexport.core.config.models import AppConfig
from bigdbexport.core.export.pipeline import ArchiveStatus
from bigdbexport.core.export.progress import ProgressSink, ProgressState
from bigdbexport.core.logging import setup_logging
from bigdbexport.core.orchestrator.runner import ExportRunner, ExportStats
from bigdbexport.core.provisioning.provisioner import ProvisioningFailed
from bigdbexport.core.remote.base import AuthError, RemoteError

console = Console()
err_console = Console(stderr=True)

MISSING_ARGUMENT_MESSAGE = (
    "Unable to launch program. An argument may be missing or invalid. "
    "To view the required arguments, use -h."
)


class RichProgressSink(ProgressSink):
    """Shows one progress bar per archive."""

    def __init__(self, progress: Progress) -> None:
        self._progress = progress
        self._tasks: dict[int, TaskID] = {}

    def started(self, state: ProgressState) -> None:
        self._tasks[id(state)] = self._progress.add_task(
            f"[cyan]{state.label}[/cyan]",
            total=state.total,
        )

    def advanced(self, state: ProgressState) -> None:
        task = self._tasks.get(id(state))
        if task is not None:
            self._progress.update(task, completed=state.processed, description=state.description)

    def finished(self, state: ProgressState) -> None:
        task = self._tasks.pop(id(state), None)
        if task is not None:
            self._progress.update(
                task,
                completed=state.processed,
                description=f"[green]{state.label}[/green]",
            )


def load_config_or_exit(config_path: Optional[Path]) -> AppConfig:
    """Load app configuration, printing the problem and exiting on failure."""
    try:
        return load_app_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]Error loading configuration:[/red] {e}")
        if e.details:
            err_console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(1)


def export_command(
    username: Optional[str] = typer.Option(
        None,
        "--username",
        "-u",
        envvar="BIGDB_USERNAME",
        help="The username of your developer account",
    ),
    password: Optional[str] = typer.Option(
        None,
        "--password",
        "-p",
        envvar="BIGDB_PASSWORD",
        help="The password of your developer account",
    ),
    game_id: Optional[str] = typer.Option(
        None,
        "--game-id",
        "-g",
        envvar="BIGDB_GAME_ID",
        help="The ID of the game to export, e.g. tictactoe-vk6aoralf0yflzepwnhdvw",
    ),
    import_folder: Optional[str] = typer.Option(
        None,
        "--import-folder",
        "-i",
        envvar="BIGDB_IMPORT_FOLDER",
        help="Directory containing the .ZIP BigDB export archives",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to app.yaml (default: configs/app.yaml if present)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override the configured log level",
    ),
) -> None:
    """Export every record named in a folder of BigDB archives.

    Records are written to exports/<gameId>/<table>/<databaseId>/<key>.tson.
    Re-running the command resumes where a previous run stopped.

    Examples:
        bigdbexport export -u dev@example.com -p secret -g mygame-abc123 -i ./archives
    """
    try:
        credentials = build_credentials(username, password, game_id, import_folder)
    except ConfigError as e:
        err_console.print(f"[red]{MISSING_ARGUMENT_MESSAGE}[/red]")
        err_console.print(f"[dim]{e}[/dim]")
        raise typer.Exit(1)

    config = load_config_or_exit(config_path)

    setup_logging(
        level=log_level or config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        rich_console=config.logging.rich_console,
        console=console,
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        runner = ExportRunner(credentials, config, progress=RichProgressSink(progress))

        try:
            stats = asyncio.run(runner.run())
        except ConfigError as e:
            err_console.print(f"[red]Unable to export game.[/red] {e}")
            raise typer.Exit(1)
        except AuthError as e:
            err_console.print(f"[red]Unable to export game.[/red] {e}")
            raise typer.Exit(1)
        except ProvisioningFailed as e:
            err_console.print(f"[red]Unable to export game.[/red] {e}")
            raise typer.Exit(1)
        except RemoteError as e:
            err_console.print(f"[red]Unable to export game. The remote API returned an error:[/red] {e}")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            err_console.print("[yellow]Export interrupted. Run the command again to resume.[/yellow]")
            raise typer.Exit(130)

    console.print()
    show_summary(stats)

    if stats.archives_failed:
        raise typer.Exit(1)


def show_summary(stats: ExportStats) -> None:
    """Show summary table of export results."""
    table = Table(title="Export Summary")

    table.add_column("Archive", style="cyan")
    table.add_column("Table")
    table.add_column("Keys", justify="right")
    table.add_column("Exported", justify="right", style="green")
    table.add_column("Present", justify="right")
    table.add_column("Not Found", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")

    for outcome in stats.outcomes:
        if outcome.status is ArchiveStatus.FAILED:
            table.add_row(
                outcome.archive.name,
                outcome.table or "-",
                "[red]unreadable[/red]",
                "-",
                "-",
                "-",
                "-",
            )
            continue

        table.add_row(
            outcome.archive.name,
            outcome.table or "-",
            str(outcome.total),
            str(outcome.exported),
            str(outcome.already_present),
            str(outcome.not_found),
            str(outcome.failed),
        )

    if len(stats.outcomes) > 1:
        table.add_section()
        table.add_row(
            "[bold]Total[/bold]",
            "",
            str(stats.keys_total),
            str(stats.exported),
            str(stats.already_present),
            str(stats.not_found),
            str(stats.failed),
        )

    console.print(table)

    if stats.duration_seconds is not None:
        console.print(f"[dim]Finished in {stats.duration_seconds:.1f}s[/dim]")

    for outcome in stats.outcomes:
        if outcome.error:
            console.print(f"[red]{outcome.archive.name}:[/red] {outcome.error}")

    if stats.errors_logged:
        console.print(
            f"[yellow]{stats.errors_logged} keys failed - see {stats.error_log} for details. "
            "Run the command again to retry them.[/yellow]"
        )
