"""
Metrics collection and monitoring for the polling system.

This module provides the per-repository outcome of a poll cycle, the cycle
report aggregated from those outcomes, and running totals across cycles.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class PollOutcome(str, Enum):
    """Terminal state of one repository within one poll cycle."""

    UNCHANGED = "unchanged"
    BASELINE_RECORDED = "baseline_recorded"
    NOTIFIED_AND_UPDATED = "notified_and_updated"
    FETCH_FAILED = "fetch_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    ERROR = "error"

    @property
    def is_failure(self) -> bool:
        return self in (
            PollOutcome.FETCH_FAILED,
            PollOutcome.PERSISTENCE_FAILED,
            PollOutcome.ERROR,
        )


@dataclass
class RepositoryPollResult:
    """Result of polling a single repository."""

    repository_id: str
    repository_name: str
    outcome: PollOutcome
    tag_name: str | None = None
    previous_tag: str | None = None
    notified_chats: list[int] = field(default_factory=list)
    failed_chats: list[int] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository_id": self.repository_id,
            "repository_name": self.repository_name,
            "outcome": self.outcome.value,
            "tag_name": self.tag_name,
            "previous_tag": self.previous_tag,
            "notified_chats": list(self.notified_chats),
            "failed_chats": list(self.failed_chats),
            "error": self.error,
            "error_code": self.error_code,
        }


@dataclass
class PollCycleReport:
    """Aggregated results for a single poll cycle."""

    cycle_id: str
    start_time: datetime
    end_time: datetime | None = None
    results: list[RepositoryPollResult] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Get cycle duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    @property
    def repositories_processed(self) -> int:
        return len(self.results)

    @property
    def notifications_sent(self) -> int:
        return sum(len(r.notified_chats) for r in self.results)

    @property
    def notifications_failed(self) -> int:
        return sum(len(r.failed_chats) for r in self.results)

    @property
    def failures(self) -> list[RepositoryPollResult]:
        return [r for r in self.results if r.outcome.is_failure]

    def count(self, outcome: PollOutcome) -> int:
        """Number of repositories that ended in the given outcome."""
        return sum(1 for r in self.results if r.outcome is outcome)

    def outcome_counts(self) -> dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in PollOutcome}

    def result_for(self, repository_id: str) -> RepositoryPollResult | None:
        for result in self.results:
            if result.repository_id == repository_id:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "repositories_processed": self.repositories_processed,
            "outcomes": self.outcome_counts(),
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "results": [r.to_dict() for r in self.results],
        }


class PollingMetrics:
    """Running totals across poll cycles."""

    def __init__(self, max_history: int = 20):
        self.max_history = max_history
        self.history: deque[PollCycleReport] = deque(maxlen=max_history)
        self.total_cycles = 0
        self.aborted_cycles = 0
        self.total_notifications_sent = 0
        self.total_notifications_failed = 0
        self.outcome_totals: dict[str, int] = {o.value: 0 for o in PollOutcome}
        self.last_error: str | None = None

    def record_cycle(self, report: PollCycleReport) -> None:
        """Record a completed cycle."""
        self.history.append(report)
        self.total_cycles += 1
        self.total_notifications_sent += report.notifications_sent
        self.total_notifications_failed += report.notifications_failed
        for outcome, count in report.outcome_counts().items():
            self.outcome_totals[outcome] += count

    def record_aborted_cycle(self, error: str) -> None:
        """Record a cycle that could not enumerate repositories."""
        self.aborted_cycles += 1
        self.last_error = error

    @property
    def last_report(self) -> PollCycleReport | None:
        return self.history[-1] if self.history else None

    def get_averages(self) -> dict[str, float]:
        """Get average cycle duration and repository count over the history."""
        if not self.history:
            return {"avg_cycle_time": 0.0, "avg_repositories": 0.0}
        return {
            "avg_cycle_time": sum(r.duration_seconds for r in self.history)
            / len(self.history),
            "avg_repositories": sum(r.repositories_processed for r in self.history)
            / len(self.history),
        }

    def get_summary(self) -> dict[str, Any]:
        """Get a summary for the status endpoint."""
        last = self.last_report
        return {
            "total_cycles": self.total_cycles,
            "aborted_cycles": self.aborted_cycles,
            "notifications_sent": self.total_notifications_sent,
            "notifications_failed": self.total_notifications_failed,
            "outcomes": dict(self.outcome_totals),
            "averages": self.get_averages(),
            "last_error": self.last_error,
            "last_cycle": last.to_dict() if last else None,
        }
