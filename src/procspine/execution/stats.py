"""Aggregate counters for one runner invocation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from procspine.execution.outcome import JobOutcome, OutcomeKind


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class JobStatistics:
    """Monotonic job counters.

    ``succeeded + failed + skipped + unclassified == submitted`` once every
    submitted job has been classified.
    """

    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    unclassified: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def record(self, outcome: JobOutcome) -> None:
        """Count a classified outcome."""
        if outcome.kind is OutcomeKind.SUCCEEDED:
            self.succeeded += 1
        elif outcome.kind is OutcomeKind.FAILED:
            self.failed += 1
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            self.unclassified += 1

    @property
    def classified(self) -> int:
        return self.succeeded + self.failed + self.skipped + self.unclassified

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at or _utcnow()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "unclassified": self.unclassified,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }
