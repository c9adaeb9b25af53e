"""
On-disk layout of exported records.

Records live at ``<output_dir>/<gameId>/<table>/<databaseId>/<key>.<ext>``.
A record file only ever appears under its final name once its payload
is complete, so the presence of the file is a reliable "already
exported" marker for resuming.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import orjson

from bigdbexport.core.archive.scanner import ArchiveInfo


class UnsafeKeyError(ValueError):
    """A key cannot be used as a file name."""


def serialize_record(record: Any) -> bytes:
    """Canonical text form of a record: sorted keys, two-space indent, UTF-8."""
    return orjson.dumps(
        record,
        default=str,
        option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
    )


class RecordStore:
    """Record files of one archive's output directory."""

    def __init__(self, directory: Path, extension: str = "tson") -> None:
        self.directory = Path(directory)
        self.extension = extension.lstrip(".")

    @property
    def suffix(self) -> str:
        return f".{self.extension}"

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        if not key or key in (".", "..") or "/" in key or "\\" in key or "\x00" in key:
            raise UnsafeKeyError(f"Key cannot be used as a file name: {key!r}")
        return self.directory / f"{key}{self.suffix}"

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def existing_keys(self) -> set[str]:
        """Keys that already have a record file."""
        if not self.directory.is_dir():
            return set()
        suffix = self.suffix
        return {
            entry.name[: -len(suffix)]
            for entry in os.scandir(self.directory)
            if entry.is_file() and entry.name.endswith(suffix) and len(entry.name) > len(suffix)
        }

    def write(self, key: str, record: Any) -> Path:
        """Write a record, replacing the final file in one step."""
        final_path = self.path_for(key)
        payload = serialize_record(record)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, final_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        return final_path


class OutputLayout:
    """Maps archives to their output directories under a common root."""

    def __init__(self, root: Path | str = "exports", extension: str = "tson") -> None:
        self.root = Path(root)
        self.extension = extension

    def directory_for(self, info: ArchiveInfo) -> Path:
        return self.root / info.game_id / info.table / info.database_id

    def store_for(self, info: ArchiveInfo) -> RecordStore:
        return RecordStore(self.directory_for(info), self.extension)
