"""
BigDB Export CLI - Main entry point.

Exports BigDB tables by re-fetching every record named in the
snapshot archives through a temporary read-only connection.
"""

from __future__ import annotations

from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.traceback import install as install_rich_traceback

from bigdbexport import __app_name__, __version__

# Load credentials and settings from .env (if present)
load_dotenv()

# Install rich traceback for better error display
install_rich_traceback(show_locals=False, width=120)

console = Console()

# Create main app
app = typer.Typer(
    name=__app_name__,
    help="Export BigDB tables to disk from snapshot archives",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """BigDB Export - migrate records out of BigDB tables."""
    pass


# =============================================================================
# Import and register command modules
# =============================================================================

from .commands import cleanup, export, scan  # noqa: E402

app.command("export")(export.export_command)
app.command("scan")(scan.scan_command)
app.command("cleanup")(cleanup.cleanup_command)


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
