"""
Cleanup command - remove the export connection.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from bigdbexport.core.config.loader import ConfigError
from bigdbexport.core.config.models import AppConfig
from bigdbexport.core.logging import setup_logging
from bigdbexport.core.provisioning.provisioner import ChannelProvisioner
from bigdbexport.core.remote.base import AuthError, NotFoundError, RemoteError
from bigdbexport.core.remote.http_client import BigDBApiClient

from .export import load_config_or_exit

console = Console()
err_console = Console(stderr=True)


async def remove_export_connection(
    username: str,
    password: str,
    game_id: str,
    config: AppConfig,
    client: BigDBApiClient | None = None,
) -> bool:
    """Delete the export connection of a game. Returns True if one was listed."""
    owns_client = client is None
    client = client or BigDBApiClient(config.remote)
    try:
        account = await client.login(username, password)
        try:
            control = client.control_plane(account, game_id)
        except NotFoundError as e:
            raise ConfigError("No game was found matching the specified gameId.") from e

        provisioner = ChannelProvisioner(control, client, config.provisioning, username=username)
        return await provisioner.teardown()
    finally:
        if owns_client:
            await client.close()


def cleanup_command(
    username: str = typer.Option(..., "--username", "-u", envvar="BIGDB_USERNAME"),
    password: str = typer.Option(..., "--password", "-p", envvar="BIGDB_PASSWORD"),
    game_id: str = typer.Option(..., "--game-id", "-g", envvar="BIGDB_GAME_ID"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
) -> None:
    """Delete the export connection left behind by a previous run."""
    config = load_config_or_exit(config_path)
    setup_logging(level=config.logging.level, rich_console=config.logging.rich_console, console=console)

    try:
        removed = asyncio.run(remove_export_connection(username, password, game_id, config))
    except (ConfigError, AuthError, RemoteError) as e:
        err_console.print(f"[red]Unable to remove export connection.[/red] {e}")
        raise typer.Exit(1)

    name = config.provisioning.connection_name
    if removed:
        console.print(f"[green]Deleted connection '{name}'.[/green]")
    else:
        console.print(f"[dim]No connection named '{name}' exists.[/dim]")
