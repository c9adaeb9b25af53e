"""
Export runner orchestrator.

Coordinates the full export workflow:
discover archives → sign in → select game → provision connection → export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bigdbexport.core.archive.scanner import discover_archives
from bigdbexport.core.config.loader import ConfigError
from bigdbexport.core.config.models import AppConfig, Credentials
from bigdbexport.core.export.errorlog import ErrorLog
from bigdbexport.core.export.pipeline import ArchiveOutcome, ArchiveStatus, ExportPipeline
from bigdbexport.core.export.progress import ProgressSink
from bigdbexport.core.provisioning.provisioner import ChannelProvisioner
from bigdbexport.core.remote.base import AuthError, NotFoundError
from bigdbexport.core.remote.http_client import BigDBApiClient


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExportStats:
    """Statistics for an export run."""

    archives: int = 0
    archives_failed: int = 0
    keys_total: int = 0
    exported: int = 0
    already_present: int = 0
    not_found: int = 0
    failed: int = 0
    errors_logged: int = 0
    error_log: Path | None = None

    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    outcomes: list[ArchiveOutcome] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def add(self, outcome: ArchiveOutcome) -> None:
        self.outcomes.append(outcome)
        self.archives += 1
        if outcome.status is ArchiveStatus.FAILED:
            self.archives_failed += 1
        self.keys_total += outcome.total
        self.exported += outcome.exported
        self.already_present += outcome.already_present
        self.not_found += outcome.not_found
        self.failed += outcome.failed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "archives": self.archives,
            "archives_failed": self.archives_failed,
            "keys_total": self.keys_total,
            "exported": self.exported,
            "already_present": self.already_present,
            "not_found": self.not_found,
            "failed": self.failed,
            "errors_logged": self.errors_logged,
            "duration_seconds": self.duration_seconds,
        }


class ExportRunner:
    """Orchestrates a complete export run.

    Coordinates:
    - Archive discovery
    - Developer login and game selection
    - Export connection provisioning
    - The per-archive export pipeline

    Login, game selection and provisioning failures abort the run;
    everything after that is reported through ExportStats.
    """

    def __init__(
        self,
        credentials: Credentials,
        config: AppConfig | None = None,
        *,
        client: BigDBApiClient | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        """Initialize the export runner.

        Args:
            credentials: Account, game and archive folder of this run
            config: Application configuration
            client: API client (will create if not provided)
            progress: Receiver of per-archive progress events
        """
        self.credentials = credentials
        self.config = config or AppConfig()
        self._client = client
        self._owns_client = client is None
        self.progress = progress

    async def run(self) -> ExportStats:
        """Execute a complete export run.

        Raises:
            ConfigError: If the archive folder is unusable or the game is unknown
            AuthError: If the account credentials are rejected
            ProvisioningFailed: If the export connection cannot be made ready
        """
        stats = ExportStats()

        archives = discover_archives(self.credentials.import_folder)
        logger.info(f"Found {len(archives)} export archives in {self.credentials.import_folder}")

        client = self._client or BigDBApiClient(self.config.remote)

        try:
            try:
                account = await client.login(self.credentials.username, self.credentials.password)
            except AuthError as e:
                raise AuthError("The login details provided were invalid.", cause=e) from e
            logger.info(f"Signed in as: {account.username} ({account.email})")

            try:
                control = client.control_plane(account, self.credentials.game_id)
            except NotFoundError as e:
                raise ConfigError("No game was found matching the specified gameId.") from e
            logger.info(f"Selected game: {control.game.name} ({control.game.game_id})")

            provisioner = ChannelProvisioner(
                control,
                client,
                self.config.provisioning,
                username=self.credentials.username,
            )
            channel = await provisioner.provision()

            logger.info("Connected to the game. The export process will now begin.")

            error_log = ErrorLog(self.config.export.error_log)
            pipeline = ExportPipeline(
                channel.session,
                self.config.export,
                error_log=error_log,
                progress=self.progress,
            )
            for outcome in await pipeline.run(archives):
                stats.add(outcome)

            stats.errors_logged = error_log.count
            if error_log.count:
                stats.error_log = error_log.path

        finally:
            stats.finished_at = _utcnow()

            if self._owns_client:
                await client.close()

        logger.info("The export process has completed.")
        return stats
