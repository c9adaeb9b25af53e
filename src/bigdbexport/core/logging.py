"""
Logging infrastructure for BigDB Export.

Provides:
- Structured JSON logging for file output
- Rich console output for terminal, sharing the progress display console
- Contextual logging with archive/table context
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson
from rich.markup import escape

if TYPE_CHECKING:
    from rich.console import Console


ROOT_LOGGER = "bigdbexport"

CONTEXT_FIELDS = ("archive", "table")

LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.INFO: "default",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=str).decode("utf-8")


# =============================================================================
# JSON Formatter for File Logging
# =============================================================================


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json_dumps(log_data)


# =============================================================================
# Rich Console Handler
# =============================================================================


class RichConsoleHandler(logging.Handler):
    """Handler that outputs to a Rich console with formatting.

    Pass the console used by the progress display so that log lines are
    printed above the live progress bars instead of through them.
    """

    def __init__(self, console: "Console | None" = None, level: int = logging.INFO):
        super().__init__(level)
        if console is None:
            from rich.console import Console
            console = Console(stderr=True)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = escape(self.format(record))

            style = LEVEL_STYLES.get(record.levelno, "default")

            # Tag with the table when known, else the archive file name
            tag = getattr(record, "table", None) or getattr(record, "archive", None)
            prefix = f"[cyan]{escape(f'[{tag}]')}[/cyan] " if tag else ""

            self.console.print(f"{prefix}[{style}]{message}[/{style}]", highlight=False)

            if record.exc_info:
                self.console.print_exception()

        except Exception:
            self.handleError(record)


# =============================================================================
# Logger Configuration
# =============================================================================


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
    console: "Console | None" = None,
) -> logging.Logger:
    """Set up logging for BigDB Export.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file (optional)
        json_format: Use JSON format for file logs
        rich_console: Use Rich for console output
        console: Rich console to print through (shared with progress bars)

    Returns:
        Root logger for bigdbexport
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()

    if rich_console:
        console_handler: logging.Handler = RichConsoleHandler(console=console)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    console_handler.setLevel(getattr(logging, level.upper()))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)

        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )

        logger.addHandler(file_handler)

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (will be prefixed with 'bigdbexport.')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


# =============================================================================
# Contextual Logging Adapter
# =============================================================================


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that adds archive/table context to log records."""

    def __init__(
        self,
        logger: logging.Logger,
        archive: str | None = None,
        table: str | None = None,
    ):
        super().__init__(logger, {})
        self.archive = archive
        self.table = table

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra", {})

        if self.archive:
            extra["archive"] = self.archive
        if self.table:
            extra["table"] = self.table

        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(
        self,
        archive: str | None = None,
        table: str | None = None,
    ) -> "ContextualLogger":
        """Create a new logger with additional context."""
        return ContextualLogger(
            self.logger,
            archive=archive or self.archive,
            table=table or self.table,
        )


def get_contextual_logger(
    name: str | None = None,
    archive: str | None = None,
    table: str | None = None,
) -> ContextualLogger:
    """Get a contextual logger with archive/table context."""
    base_logger = get_logger(name)
    return ContextualLogger(base_logger, archive=archive, table=table)
