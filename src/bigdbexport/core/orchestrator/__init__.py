"""Orchestrator - run coordination from archive discovery to export summary."""

from .runner import ExportRunner, ExportStats

__all__ = [
    "ExportRunner",
    "ExportStats",
]
