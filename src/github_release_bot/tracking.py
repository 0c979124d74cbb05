"""
Tracking service for the GitHub release bot.

Backs the chat commands: registering a repository for a chat, unsubscribing,
and listing what a chat follows. It never writes the release cache; the first
poll of a new repository records its baseline.
"""

from dataclasses import dataclass, replace
from enum import Enum

import structlog

from .exceptions import InvalidRepositoryUrlError
from .models import RepositoryUrl, TrackedRepository, utc_now
from .storage.base import ReleaseCache, SubscriptionRegistry, TrackedRepositoryStore

logger = structlog.get_logger(__name__)


class TrackStatus(str, Enum):
    CREATED = "created"
    SUBSCRIBED = "subscribed"
    ALREADY_SUBSCRIBED = "already_subscribed"


@dataclass(frozen=True)
class TrackResult:
    status: TrackStatus
    repository: TrackedRepository

    @property
    def message(self) -> str:
        """Reply text for the chat that issued the command."""
        name = self.repository.repository_name
        url = self.repository.repository_url
        if self.status is TrackStatus.CREATED:
            return f"Now tracking {name} ({url})."
        if self.status is TrackStatus.SUBSCRIBED:
            return f"Updated tracking for {name} ({url})."
        return f"This chat is already tracking {name} ({url})."


@dataclass(frozen=True)
class TrackedRepositoryView:
    repository: TrackedRepository
    latest_tag: str | None


class TrackingService:
    """Registers repositories and manages chat subscriptions."""

    def __init__(
        self,
        repositories: TrackedRepositoryStore,
        subscriptions: SubscriptionRegistry,
        releases: ReleaseCache,
    ):
        self.repositories = repositories
        self.subscriptions = subscriptions
        self.releases = releases

    async def track(self, chat_id: int, name: str, url: str) -> TrackResult:
        """
        Track a repository for a chat.

        Args:
            chat_id: Telegram chat ID
            name: Display name for the repository
            url: GitHub repository URL

        Returns:
            TrackResult describing what changed

        Raises:
            InvalidRepositoryUrlError: If the name is empty or the URL is not GitHub
        """
        name = name.strip()
        if not name:
            raise InvalidRepositoryUrlError("Please provide a name for the repository.")

        repository_url = RepositoryUrl(url)
        existing = await self.repositories.find_by_url(str(repository_url))

        if existing is None:
            now = utc_now()
            repository = TrackedRepository(
                repository_name=name,
                repository_url=repository_url,
                chat_id=chat_id,
                created_at=now,
                updated_at=now,
            )
            await self.repositories.save(repository)
            await self.subscriptions.subscribe(repository.id, chat_id)
            logger.info(
                "Tracking new repository",
                repository=name,
                repository_url=str(repository_url),
                chat_id=chat_id,
            )
            return TrackResult(TrackStatus.CREATED, repository)

        created = await self.subscriptions.subscribe(existing.id, chat_id)
        if not created:
            return TrackResult(TrackStatus.ALREADY_SUBSCRIBED, existing)

        repository = replace(existing, repository_name=name, updated_at=utc_now())
        await self.repositories.save(repository)
        logger.info(
            "Chat subscribed to tracked repository",
            repository=name,
            repository_url=str(repository_url),
            chat_id=chat_id,
        )
        return TrackResult(TrackStatus.SUBSCRIBED, repository)

    async def untrack(self, chat_id: int, url: str) -> bool:
        """
        Unsubscribe a chat; the repository goes away with its last subscriber.

        Returns:
            True if the chat was subscribed
        """
        repository = await self.repositories.find_by_url(str(RepositoryUrl(url)))
        if repository is None:
            return False

        removed = await self.subscriptions.unsubscribe(repository.id, chat_id)
        if removed and not await self.subscriptions.list_subscribers(repository.id):
            await self.repositories.delete(repository.id)
            logger.info(
                "Last subscriber left, repository untracked",
                repository=repository.repository_name,
            )
        return removed

    async def remove(self, url: str) -> bool:
        """Delete a tracked repository with its cache entry and subscriptions."""
        repository = await self.repositories.find_by_url(str(RepositoryUrl(url)))
        if repository is None:
            return False
        return await self.repositories.delete(repository.id)

    async def list_for_chat(self, chat_id: int) -> list[TrackedRepositoryView]:
        """List the repositories a chat follows with their cached tag."""
        views = []
        for repository in await self.repositories.find_all_by_chat_id(chat_id):
            cached = await self.releases.get_latest(repository.id)
            views.append(
                TrackedRepositoryView(
                    repository=repository,
                    latest_tag=cached.tag_name if cached else None,
                )
            )
        return views
