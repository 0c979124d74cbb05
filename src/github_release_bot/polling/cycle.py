"""
Poll cycle for the GitHub release bot.

One cycle checks every tracked repository for a new latest release. For each
repository, fetch -> compare -> read subscribers -> cache update -> notify
runs in that order; the first successful observation only records a baseline.
Repositories are processed concurrently on a bounded pool and their failures
are reported in the cycle report instead of aborting the cycle.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Protocol

import structlog

from ..exceptions import DeliveryError, FetchError, NoReleasesError, PersistenceError
from ..models import ReleaseInfo, RepositoryUrl, TrackedRepository, utc_now
from ..storage.base import ReleaseCache, SubscriptionRegistry, TrackedRepositoryStore
from ..telegram_notifier import format_release_message
from .metrics import PollCycleReport, PollingMetrics, PollOutcome, RepositoryPollResult

logger = structlog.get_logger(__name__)


class ReleaseSource(Protocol):
    """Anything that can report the latest release of a repository."""

    async def fetch_latest(self, repository_url: RepositoryUrl) -> ReleaseInfo: ...


class Notifier(Protocol):
    """Anything that can deliver a text message to a chat."""

    async def send(self, chat_id: int, text: str) -> None: ...


class RepositoryLocks:
    """Per-repository locks so overlapping cycles never race on one cache row."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, repository_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(repository_id, asyncio.Lock())
        self._users[repository_id] = self._users.get(repository_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[repository_id] -= 1
            if self._users[repository_id] == 0:
                del self._users[repository_id]
                del self._locks[repository_id]

    def __len__(self) -> int:
        return len(self._locks)


class PollCycle:
    """
    Runs poll cycles over all tracked repositories.

    Collaborators are injected, so a cycle can be exercised directly with
    in-memory storage and fake release sources or notifiers.
    """

    def __init__(
        self,
        repositories: TrackedRepositoryStore,
        release_cache: ReleaseCache,
        subscriptions: SubscriptionRegistry,
        release_source: ReleaseSource,
        notifier: Notifier,
        concurrency: int = 5,
        metrics: PollingMetrics | None = None,
        message_formatter: Callable[
            [TrackedRepository, ReleaseInfo], str
        ] = format_release_message,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the poll cycle.

        Args:
            repositories: Tracked repository store (read only here)
            release_cache: Release cache (written only here)
            subscriptions: Subscription registry (read only here)
            release_source: Latest-release lookup, e.g. GitHubReleaseClient
            notifier: Message delivery, e.g. TelegramNotifier
            concurrency: Maximum repositories processed at the same time
            metrics: Running metrics fed with every completed cycle
            message_formatter: Builds the notification text
            clock: Source of "now" for first-seen timestamps
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {concurrency}")

        self.repositories = repositories
        self.release_cache = release_cache
        self.subscriptions = subscriptions
        self.release_source = release_source
        self.notifier = notifier
        self.concurrency = concurrency
        self.metrics = metrics or PollingMetrics()
        self.message_formatter = message_formatter
        self.clock = clock
        self._locks = RepositoryLocks()

    async def run_poll_cycle(self) -> PollCycleReport:
        """
        Poll every tracked repository once.

        Returns:
            Report with one result per repository

        Raises:
            PersistenceError: If the tracked repositories cannot be listed
        """
        report = PollCycleReport(cycle_id=uuid.uuid4().hex[:12], start_time=utc_now())
        log = logger.bind(cycle_id=report.cycle_id)
        log.info("Polling cycle started", timestamp=report.start_time.isoformat())

        try:
            repositories = await self.repositories.find_all()
        except PersistenceError as e:
            log.error("Polling cycle aborted, cannot list repositories", error=str(e))
            self.metrics.record_aborted_cycle(str(e))
            raise

        semaphore = asyncio.Semaphore(self.concurrency)

        async def process_single_repo(
            repository: TrackedRepository,
        ) -> RepositoryPollResult:
            async with semaphore:
                return await self._poll_repository(repository)

        tasks = [
            asyncio.create_task(process_single_repo(repository))
            for repository in repositories
        ]
        if tasks:
            report.results = list(await asyncio.gather(*tasks))

        report.end_time = utc_now()
        self.metrics.record_cycle(report)
        self._log_summary(log, report)
        return report

    async def _poll_repository(
        self, repository: TrackedRepository
    ) -> RepositoryPollResult:
        """Process one repository, turning any failure into a result."""
        async with self._locks.hold(repository.id):
            try:
                return await self._process_repository(repository)
            except Exception as e:
                logger.exception(
                    "Unexpected error while polling repository",
                    repository=repository.repository_name,
                    error=str(e),
                )
                return self._failure(repository, PollOutcome.ERROR, e)

    async def _process_repository(
        self, repository: TrackedRepository
    ) -> RepositoryPollResult:
        log = logger.bind(
            repository=repository.repository_name,
            repository_url=str(repository.repository_url),
        )

        try:
            release = await self.release_source.fetch_latest(repository.repository_url)
        except NoReleasesError as e:
            log.info("No release available yet", reason=str(e))
            return self._failure(repository, PollOutcome.FETCH_FAILED, e)
        except FetchError as e:
            log.warning(
                "Failed to fetch latest release", error=str(e), error_code=e.code
            )
            return self._failure(repository, PollOutcome.FETCH_FAILED, e)

        tag = release.tag_name
        try:
            cached = await self.release_cache.get_latest(repository.id)
        except PersistenceError as e:
            log.error("Failed to read release cache", error=str(e))
            return self._failure(repository, PollOutcome.PERSISTENCE_FAILED, e, tag)

        if cached is not None and cached.tag_name == tag:
            log.debug("No new release", tag=tag)
            return RepositoryPollResult(
                repository_id=repository.id,
                repository_name=repository.repository_name,
                outcome=PollOutcome.UNCHANGED,
                tag_name=tag,
                previous_tag=cached.tag_name,
            )

        previous_tag = cached.tag_name if cached else None
        subscribers: set[int] = set()
        if cached is not None:
            log.info("New release detected", tag=tag, previous_tag=previous_tag)
            # Must precede record_latest: a failed read leaves the tag unseen
            try:
                subscribers = await self.subscriptions.list_subscribers(repository.id)
            except PersistenceError as e:
                log.error("Failed to list subscribers", tag=tag, error=str(e))
                return self._failure(
                    repository, PollOutcome.PERSISTENCE_FAILED, e, tag, previous_tag
                )

        try:
            # Durable before any notification is attempted
            await self.release_cache.record_latest(repository.id, tag, self.clock())
        except PersistenceError as e:
            log.error("Failed to update release cache", tag=tag, error=str(e))
            return self._failure(
                repository, PollOutcome.PERSISTENCE_FAILED, e, tag, previous_tag
            )

        if cached is None:
            log.info("Baseline release recorded", tag=tag)
            return RepositoryPollResult(
                repository_id=repository.id,
                repository_name=repository.repository_name,
                outcome=PollOutcome.BASELINE_RECORDED,
                tag_name=tag,
            )

        notified, failed = await self._fan_out(repository, release, subscribers)
        return RepositoryPollResult(
            repository_id=repository.id,
            repository_name=repository.repository_name,
            outcome=PollOutcome.NOTIFIED_AND_UPDATED,
            tag_name=tag,
            previous_tag=previous_tag,
            notified_chats=notified,
            failed_chats=failed,
        )

    async def _fan_out(
        self,
        repository: TrackedRepository,
        release: ReleaseInfo,
        subscribers: set[int],
    ) -> tuple[list[int], list[int]]:
        """Deliver the release to every subscriber; one failure never blocks others."""
        text = self.message_formatter(repository, release)
        notified: list[int] = []
        failed: list[int] = []

        for chat_id in sorted(subscribers):
            try:
                await self.notifier.send(chat_id, text)
            except DeliveryError as e:
                logger.warning(
                    "Failed to deliver release notification",
                    repository=repository.repository_name,
                    chat_id=chat_id,
                    tag=release.tag_name,
                    error=str(e),
                    error_code=e.code,
                )
                failed.append(chat_id)
            except Exception as e:
                logger.error(
                    "Unexpected error delivering release notification",
                    repository=repository.repository_name,
                    chat_id=chat_id,
                    error=str(e),
                )
                failed.append(chat_id)
            else:
                logger.debug(
                    "Release notification sent",
                    repository=repository.repository_name,
                    chat_id=chat_id,
                    tag=release.tag_name,
                )
                notified.append(chat_id)

        return notified, failed

    @staticmethod
    def _failure(
        repository: TrackedRepository,
        outcome: PollOutcome,
        error: Exception,
        tag_name: str | None = None,
        previous_tag: str | None = None,
    ) -> RepositoryPollResult:
        return RepositoryPollResult(
            repository_id=repository.id,
            repository_name=repository.repository_name,
            outcome=outcome,
            tag_name=tag_name,
            previous_tag=previous_tag,
            error=str(error),
            error_code=getattr(error, "code", type(error).__name__),
        )

    @staticmethod
    def _log_summary(log: Any, report: PollCycleReport) -> None:
        log.info(
            "Polling cycle completed",
            duration_seconds=report.duration_seconds,
            repositories_processed=report.repositories_processed,
            outcomes=report.outcome_counts(),
            notifications_sent=report.notifications_sent,
            notifications_failed=report.notifications_failed,
        )
        if report.failures:
            log.warning(
                "Repositories failed during polling cycle",
                repositories=[r.repository_name for r in report.failures],
            )
