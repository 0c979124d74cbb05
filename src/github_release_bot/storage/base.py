"""
Storage abstractions for the GitHub release bot.

Three ports cover the persisted state: tracked repositories, the per-repository
release cache and chat subscriptions. Backends must translate engine failures
into PersistenceError so the poll cycle can report them per repository.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import CachedRelease, TrackedRepository


class TrackedRepositoryStore(ABC):
    """Tracked repositories, unique by URL."""

    @abstractmethod
    async def save(self, repository: TrackedRepository) -> None:
        """
        Insert or update a tracked repository by id.

        Args:
            repository: Repository to persist
        """
        pass

    @abstractmethod
    async def find_all(self) -> list[TrackedRepository]:
        """
        Get all tracked repositories, newest first.

        Returns:
            List of tracked repositories
        """
        pass

    @abstractmethod
    async def find_by_id(self, repository_id: str) -> TrackedRepository | None:
        pass

    @abstractmethod
    async def find_by_url(self, repository_url: str) -> TrackedRepository | None:
        pass

    @abstractmethod
    async def find_all_by_chat_id(self, chat_id: int) -> list[TrackedRepository]:
        """
        Get the repositories a chat is subscribed to.

        Args:
            chat_id: Telegram chat ID

        Returns:
            List of tracked repositories, newest first
        """
        pass

    @abstractmethod
    async def delete(self, repository_id: str) -> bool:
        """
        Delete a repository together with its cache entry and subscriptions.

        Args:
            repository_id: Tracked repository ID

        Returns:
            True if a repository was deleted
        """
        pass


class ReleaseCache(ABC):
    """Last seen release tag per tracked repository."""

    @abstractmethod
    async def get_latest(self, repository_id: str) -> CachedRelease | None:
        """
        Get the cached release for a repository.

        Args:
            repository_id: Tracked repository ID

        Returns:
            Cached release or None if never polled successfully
        """
        pass

    @abstractmethod
    async def record_latest(
        self, repository_id: str, tag_name: str, seen_at: datetime
    ) -> None:
        """
        Atomically upsert the single cache row for a repository.

        ``first_seen_at`` only moves when the tag changes.

        Args:
            repository_id: Tracked repository ID
            tag_name: Latest observed tag
            seen_at: When the tag was observed
        """
        pass

    @abstractmethod
    async def find_by_tag(self, tag_name: str) -> list[CachedRelease]:
        """Get every repository currently cached at the given tag."""
        pass


class SubscriptionRegistry(ABC):
    """Chats subscribed to tracked repositories."""

    @abstractmethod
    async def list_subscribers(self, repository_id: str) -> set[int]:
        """
        Get the chats subscribed to a repository.

        Args:
            repository_id: Tracked repository ID

        Returns:
            Set of chat IDs (possibly empty)
        """
        pass

    @abstractmethod
    async def subscribe(self, repository_id: str, chat_id: int) -> bool:
        """Subscribe a chat; returns False when it was already subscribed."""
        pass

    @abstractmethod
    async def unsubscribe(self, repository_id: str, chat_id: int) -> bool:
        """Unsubscribe a chat; returns False when it was not subscribed."""
        pass
