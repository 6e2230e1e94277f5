"""Per-candidate outcomes and the run-level discovery report."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scout.registry.models import DiscoveryRun


class OutcomeStatus(str, Enum):
    ADDED = "added"
    DUPLICATE = "duplicate-skipped"
    REJECTED = "rejected"
    FAILED = "failed"
    ABANDONED = "abandoned"  # Cancelled or out of budget before finishing


@dataclass
class CandidateOutcome:
    """What happened to one candidate. Exactly one per processed candidate."""

    url: str
    status: OutcomeStatus
    reason: str = ""
    entry_id: int | None = None

    def describe(self) -> str:
        if self.reason:
            return f"{self.url}: {self.reason}"
        return self.url


@dataclass
class DiscoveryReport:
    """Accumulated result of a discovery run.

    Merged by the coordinating thread only; workers hand back
    ``CandidateOutcome`` values instead of touching the report.
    """

    discovered: int = 0
    processed: int = 0
    added: int = 0
    duplicate_skipped: int = 0
    rejected: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    rejections: list[str] = field(default_factory=list)
    dropped_messages: int = 0  # Errors/rejections beyond max_errors
    duration_ms: int = 0
    partial: bool = False
    aborted: bool = False
    fatal_error: str = ""
    started_at: str = ""
    finished_at: str = ""
    max_errors: int = 50

    @property
    def success(self) -> bool:
        """False only when the run aborted on a fatal store failure."""
        return not self.aborted

    def add_error(self, message: str) -> None:
        self._bounded_append(self.errors, message)

    def record(self, outcome: CandidateOutcome) -> None:
        """Fold one candidate outcome into the counts.

        An abandoned candidate is not counted as processed, but it means
        the run did not finish its work, so the report becomes partial.
        """
        if outcome.status == OutcomeStatus.ABANDONED:
            self.partial = True
            return

        self.processed += 1
        if outcome.status == OutcomeStatus.ADDED:
            self.added += 1
        elif outcome.status == OutcomeStatus.DUPLICATE:
            self.duplicate_skipped += 1
        elif outcome.status == OutcomeStatus.REJECTED:
            self.rejected += 1
            self._bounded_append(self.rejections, outcome.describe())
        else:
            self.failed += 1
            self._bounded_append(self.errors, f"Failed: {outcome.describe()}")

    def abort(self, message: str) -> None:
        """Mark the run as aborted with a single top-level error."""
        self.aborted = True
        self.fatal_error = message
        self.errors = [message]

    def _bounded_append(self, target: list[str], message: str) -> None:
        if len(target) < self.max_errors:
            target.append(message)
        else:
            self.dropped_messages += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "discovered": self.discovered,
            "processed": self.processed,
            "added": self.added,
            "duplicate_skipped": self.duplicate_skipped,
            "rejected": self.rejected,
            "failed": self.failed,
            "errors": list(self.errors),
            "rejections": list(self.rejections),
            "dropped_messages": self.dropped_messages,
            "duration_ms": self.duration_ms,
            "partial": self.partial,
            "aborted": self.aborted,
            "fatal_error": self.fatal_error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }

    def to_run(self) -> DiscoveryRun:
        return DiscoveryRun(
            started_at=self.started_at,
            finished_at=self.finished_at,
            discovered=self.discovered,
            processed=self.processed,
            added=self.added,
            duplicate_skipped=self.duplicate_skipped,
            rejected=self.rejected,
            failed=self.failed,
            duration_ms=self.duration_ms,
            partial=self.partial,
            aborted=self.aborted,
        )
