"""
Polling system for the GitHub release bot.

This package contains the poll cycle that detects new releases and fans them
out to subscribers, its metrics, and the scheduler that drives it.
"""

from .cycle import PollCycle, RepositoryLocks
from .metrics import PollCycleReport, PollingMetrics, PollOutcome, RepositoryPollResult
from .scheduler import PollScheduler

__all__ = [
    "PollCycle",
    "PollCycleReport",
    "PollOutcome",
    "PollScheduler",
    "PollingMetrics",
    "RepositoryLocks",
    "RepositoryPollResult",
]
