"""
Export pipeline.

Runs one worker per archive on a bounded pool. Each worker scans the
archive for keys, skips keys that already have a record file, and
loads the rest one at a time through the provisioned session:

    archive → keys → (skip existing) → load → write / skip / log error
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable

from bigdbexport.core.archive.scanner import ArchiveInfo, MalformedArchive, read_archive_keys
from bigdbexport.core.config.models import ExportConfig
from bigdbexport.core.logging import get_contextual_logger
from bigdbexport.core.remote.base import BigDBSession, RecordNotFound

from .errorlog import ErrorLog
from .progress import ProgressSink, ProgressState
from .store import OutputLayout, RecordStore


logger = logging.getLogger(__name__)


class ArchiveStatus(str, Enum):
    """Final state of an archive worker."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class KeyResult(str, Enum):
    """What happened to a single key."""

    EXPORTED = "EXPORTED"
    ALREADY_PRESENT = "ALREADY_PRESENT"
    NOT_FOUND = "NOT_FOUND"
    FAILED = "FAILED"


@dataclass
class ArchiveOutcome:
    """Per-archive statistics."""

    archive: Path
    table: str | None = None
    output_dir: Path | None = None
    status: ArchiveStatus = ArchiveStatus.PENDING
    total: int = 0
    exported: int = 0
    already_present: int = 0
    not_found: int = 0
    failed: int = 0
    error: str | None = None

    @property
    def processed(self) -> int:
        return self.exported + self.already_present + self.not_found + self.failed

    def count(self, result: KeyResult) -> None:
        if result is KeyResult.EXPORTED:
            self.exported += 1
        elif result is KeyResult.ALREADY_PRESENT:
            self.already_present += 1
        elif result is KeyResult.NOT_FOUND:
            self.not_found += 1
        else:
            self.failed += 1


class ExportPipeline:
    """Exports the records named in a set of archives.

    Archives race each other on a pool of ``max_concurrent_archives``
    workers; keys inside one archive are processed strictly in scan
    order. A failing key is written to the error log and skipped; a
    malformed archive fails only its own worker.
    """

    def __init__(
        self,
        session: BigDBSession,
        config: ExportConfig | None = None,
        *,
        error_log: ErrorLog | None = None,
        progress: ProgressSink | None = None,
        key_reader: Callable[[Path], list[str]] = read_archive_keys,
    ) -> None:
        self.session = session
        self.config = config or ExportConfig()
        self.layout = OutputLayout(self.config.output_dir, self.config.record_extension)
        self.error_log = error_log or ErrorLog(self.config.error_log)
        self.progress = progress or ProgressSink()
        self.key_reader = key_reader

    async def run(self, archives: Iterable[Path | str]) -> list[ArchiveOutcome]:
        """Export every archive. Returns one outcome per archive, in input order."""
        semaphore = asyncio.Semaphore(self.config.max_concurrent_archives)

        async def worker(path: Path) -> ArchiveOutcome:
            async with semaphore:
                return await self.export_archive(path)

        return list(await asyncio.gather(*(worker(Path(p)) for p in archives)))

    async def export_archive(self, path: Path) -> ArchiveOutcome:
        outcome = ArchiveOutcome(archive=path)
        log = get_contextual_logger("export", archive=path.name)

        try:
            info = ArchiveInfo.from_path(path)
            outcome.table = info.table
            log = log.with_context(table=info.table)

            store = self.layout.store_for(info)
            store.ensure_directory()
            outcome.output_dir = store.directory

            keys = await asyncio.to_thread(self.key_reader, info.path)
            existing = await asyncio.to_thread(store.existing_keys)
        except (MalformedArchive, OSError) as e:
            outcome.status = ArchiveStatus.FAILED
            outcome.error = str(e)
            log.error(f"Skipping archive {path.name}: {e}")
            return outcome

        outcome.total = len(keys)
        state = ProgressState(label=info.table, total=len(keys))
        self.progress.started(state)

        log.debug(f"{len(keys)} keys in snapshot, {len(existing)} already exported")

        for key in keys:
            result = await self._export_key(info, store, existing, key)
            outcome.count(result)
            state.advance(key)
            self.progress.advanced(state)

        self.progress.finished(state)
        outcome.status = ArchiveStatus.COMPLETED

        log.info(
            f"{info.table}: {outcome.exported} exported, {outcome.already_present} already present, "
            f"{outcome.not_found} not found, {outcome.failed} failed"
        )
        return outcome

    async def _export_key(
        self,
        info: ArchiveInfo,
        store: RecordStore,
        existing: set[str],
        key: str,
    ) -> KeyResult:
        if key in existing:
            return KeyResult.ALREADY_PRESENT

        source = f"{info.table}/{key}"

        try:
            record = await self.session.load(info.table, key)
        except RecordNotFound:
            return KeyResult.NOT_FOUND
        except Exception as e:
            await self._record_failure(source, e)
            return KeyResult.FAILED

        if record is None:
            return KeyResult.NOT_FOUND

        try:
            await asyncio.to_thread(store.write, key, record)
        except (OSError, ValueError, TypeError) as e:
            await self._record_failure(source, e)
            return KeyResult.FAILED

        existing.add(key)
        return KeyResult.EXPORTED

    async def _record_failure(self, source: str, error: Exception) -> None:
        message = f"{type(error).__name__}: {error}"
        await asyncio.to_thread(self.error_log.record, source, message)
        logger.debug(f"Export failed for {source}: {message}")
