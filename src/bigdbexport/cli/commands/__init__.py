"""CLI command modules."""

from . import cleanup, export, scan

__all__ = [
    "cleanup",
    "export",
    "scan",
]
