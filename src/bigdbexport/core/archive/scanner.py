"""
Key scanner for BigDB snapshot archives.

The snapshot entry inside each export archive is a large, loosely
formatted JSON-like document. Rather than parsing it, the scanner looks
for the byte sequence that precedes every top-level record,

    CR LF TAB "

and reads the quoted key that follows it up to the next double quote.
The scanner is an incremental finite-state machine, so it can be fed an
entry stream chunk by chunk and finds delimiters that straddle chunk
boundaries.
"""

from __future__ import annotations

import logging
import zipfile
import zlib
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import BinaryIO

from bigdbexport.core.config.loader import ConfigError


logger = logging.getLogger(__name__)


DELIMITER = b'\r\n\t"'
QUOTE = 0x22
CHUNK_SIZE = 64 * 1024


class MalformedArchive(Exception):
    """Archive cannot be read or holds no snapshot entry."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class ArchiveInfo:
    """An export archive and the identifiers encoded in its file name.

    File names look like ``<gameId>_<table>_<databaseId>_<anything>.zip``;
    only the first three underscore-separated segments are used.
    """

    path: Path
    game_id: str
    table: str
    database_id: str

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path | str) -> "ArchiveInfo":
        path = Path(path)
        segments = path.stem.split("_")
        if len(segments) < 3 or not all(segments[:3]):
            raise MalformedArchive(
                f"Archive name does not match <gameId>_<table>_<databaseId>: {path.name}",
                path=path,
            )
        return cls(
            path=path,
            game_id=segments[0],
            table=segments[1],
            database_id=segments[2],
        )


def _failure_table(pattern: bytes) -> list[int]:
    """Longest proper prefix that is also a suffix, for each prefix of pattern."""
    table = [0] * len(pattern)
    k = 0
    for i in range(1, len(pattern)):
        while k and pattern[i] != pattern[k]:
            k = table[k - 1]
        if pattern[i] == pattern[k]:
            k += 1
        table[i] = k
    return table


class KeyScanner:
    """Finds delimiter occurrences in a byte stream and collects the keys after them.

    States:
        searching  - matching bytes against the delimiter
        reading    - a delimiter was seen, accumulating key bytes until a quote

    Searching continues while a key is being read, so every delimiter
    occurrence is recorded even if it shows up inside a key. A delimiter
    ends with a quote, which also terminates any key still being read.
    """

    def __init__(self, delimiter: bytes = DELIMITER) -> None:
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = delimiter
        self._fallback = _failure_table(delimiter)
        self._matched = 0
        self._key: bytearray | None = None
        self._position = 0

        self.offsets: list[int] = []
        self.unterminated = False

    @property
    def bytes_scanned(self) -> int:
        return self._position

    def _step(self, byte: int) -> bool:
        """Advance the delimiter matcher by one byte. Returns True on a full match."""
        m = self._matched
        while m and self.delimiter[m] != byte:
            m = self._fallback[m - 1]
        if self.delimiter[m] == byte:
            m += 1
        if m == len(self.delimiter):
            self._matched = self._fallback[m - 1]
            return True
        self._matched = m
        return False

    def feed(self, chunk: bytes) -> list[str]:
        """Scan the next chunk and return the keys completed within it."""
        keys: list[str] = []
        first = self.delimiter[0]
        base = self._position
        i = 0
        n = len(chunk)

        while i < n:
            if self._key is None and self._matched == 0:
                j = chunk.find(first, i)
                if j == -1:
                    break
                i = j

            byte = chunk[i]

            if self._key is not None:
                if byte == QUOTE:
                    keys.append(self._decode(self._key))
                    self._key = None
                else:
                    self._key.append(byte)

            if self._step(byte):
                self.offsets.append(base + i + 1 - len(self.delimiter))
                self._key = bytearray()

            i += 1

        self._position = base + n
        return keys

    def close(self) -> None:
        """Finish the stream. A key with no closing quote is discarded."""
        if self._key is not None:
            self.unterminated = True
            logger.debug(
                "Discarding unterminated key at end of stream (%d bytes)",
                len(self._key),
            )
        self._key = None
        self._matched = 0

    @staticmethod
    def _decode(raw: bytearray) -> str:
        return bytes(raw).decode("utf-8", errors="surrogateescape")


def extract_keys(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> list[str]:
    """Return every key in the stream, in stream order, duplicates included."""
    scanner = KeyScanner()
    keys: list[str] = []
    for chunk in iter(partial(stream.read, chunk_size), b""):
        keys.extend(scanner.feed(chunk))
    scanner.close()
    return keys


def read_archive_keys(path: Path | str) -> list[str]:
    """Scan the snapshot entry of an export archive for record keys.

    Raises:
        MalformedArchive: If the archive is not a readable zip file or has no entries
    """
    path = Path(path)
    try:
        with zipfile.ZipFile(path) as archive:
            entries = [info for info in archive.infolist() if not info.is_dir()]
            if not entries:
                raise MalformedArchive(f"Archive contains no entries: {path.name}", path=path)
            if len(entries) > 1:
                logger.warning(
                    "Archive %s has %d entries, scanning only %s",
                    path.name,
                    len(entries),
                    entries[0].filename,
                )
            with archive.open(entries[0]) as stream:
                return extract_keys(stream)
    except MalformedArchive:
        raise
    except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError, OSError) as e:
        raise MalformedArchive(f"Unable to read archive {path.name}: {e}", path=path) from e


def discover_archives(folder: Path | str) -> list[Path]:
    """List the export archives at the top level of a directory.

    Raises:
        ConfigError: If the directory is missing or holds no .zip files
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise ConfigError(
            "The input directory specified does not exist.",
            path=folder,
        )

    archives = sorted(
        p for p in folder.iterdir()
        if p.is_file() and p.suffix.lower() == ".zip"
    )
    if not archives:
        raise ConfigError(
            "The input directory specified does not contain any .ZIP export files.",
            path=folder,
        )
    return archives
