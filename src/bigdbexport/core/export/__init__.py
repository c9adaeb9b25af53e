"""Export pipeline - per-archive workers, record files, error log, progress."""

from .errorlog import ErrorLog
from .pipeline import ArchiveOutcome, ArchiveStatus, ExportPipeline, KeyResult
from .progress import ProgressSink, ProgressState
from .store import OutputLayout, RecordStore, UnsafeKeyError, serialize_record

__all__ = [
    "ArchiveOutcome",
    "ArchiveStatus",
    "ErrorLog",
    "ExportPipeline",
    "KeyResult",
    "OutputLayout",
    "ProgressSink",
    "ProgressState",
    "RecordStore",
    "UnsafeKeyError",
    "serialize_record",
]
