"""Append-only log of per-key export failures."""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from urllib.parse import quote


class ErrorLog:
    """Durable, line-oriented failure log shared by all archive workers.

    Each failure is one line, ``<timestamp> <source> <message>``. The source
    tag is percent-encoded so it never holds whitespace or control bytes, and
    the message is flattened onto one line. Lines are written whole under a
    lock, so concurrent writers never interleave.
    """

    def __init__(self, path: Path | str = "errorlog.txt") -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self.count = 0

    @staticmethod
    def format_line(source: str, message: str, when: datetime | None = None) -> str:
        when = when or datetime.now()
        tag = quote(source, safe="/", errors="surrogateescape")
        flat = " ".join(message.split())
        return f"{when.isoformat(timespec='seconds')} {tag} {flat}"

    def record(self, source: str, message: str, when: datetime | None = None) -> str:
        line = self.format_line(source, message, when)
        with self._lock:
            if self.path.parent != Path("."):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8", errors="backslashreplace") as f:
                f.write(line + "\n")
            self.count += 1
        return line
