"""Counters and recent-failure log used for node diagnostics."""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FailureRecord:
    """One recovered failure (peer dropped, branch failed, listener raised)."""

    source: str
    target: str | None
    error: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary."""
        return {
            "source": self.source,
            "target": self.target,
            "error": self.error,
            "timestamp": self.timestamp,
        }


class EmitterStats:
    """Named counters plus a bounded history of recovered failures."""

    def __init__(self, max_failures: int = 100) -> None:
        """Initialize empty statistics."""
        self.counters: Counter[str] = Counter()
        self.failures: deque[FailureRecord] = deque(maxlen=max_failures)

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a named counter."""
        self.counters[name] += amount

    def record_failure(
        self, source: str, error: BaseException | str, target: str | None = None
    ) -> FailureRecord:
        """Record a recovered failure and bump ``<source>_failures``."""
        record = FailureRecord(source=source, target=target, error=str(error))
        self.failures.append(record)
        self.counters[f"{source}_failures"] += 1
        return record

    def snapshot(self) -> dict[str, Any]:
        """Return a plain-data copy of the statistics."""
        return {
            "counters": dict(self.counters),
            "recent_failures": [f.to_dict() for f in self.failures],
        }
