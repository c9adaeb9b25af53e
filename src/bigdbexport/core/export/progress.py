"""
Per-archive progress tracking.

Each archive worker owns one ProgressState and reports it to a
ProgressSink after every key. The sink is the only place progress from
different archives comes together.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ProgressState:
    """Keys considered so far for one archive."""

    label: str
    total: int = 0
    processed: int = 0
    current_key: str | None = None

    @property
    def description(self) -> str:
        if self.current_key is None:
            return self.label
        return f"{self.label} - {self.current_key}"

    @property
    def done(self) -> bool:
        return self.processed >= self.total

    def advance(self, key: str) -> None:
        self.processed += 1
        self.current_key = key


class ProgressSink:
    """Receives progress events from archive workers. Default is a no-op."""

    def started(self, state: ProgressState) -> None:
        pass

    def advanced(self, state: ProgressState) -> None:
        pass

    def finished(self, state: ProgressState) -> None:
        pass
