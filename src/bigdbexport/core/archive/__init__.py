"""Snapshot archives - naming, discovery and key scanning."""

from .scanner import (
    DELIMITER,
    ArchiveInfo,
    KeyScanner,
    MalformedArchive,
    discover_archives,
    extract_keys,
    read_archive_keys,
)

__all__ = [
    "DELIMITER",
    "ArchiveInfo",
    "KeyScanner",
    "MalformedArchive",
    "discover_archives",
    "extract_keys",
    "read_archive_keys",
]
