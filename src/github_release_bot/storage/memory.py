"""
In-memory storage backend.

Used for dry runs and tests. All three stores share one MemoryBackend so that
deleting a repository cascades exactly like the SQLite foreign keys do.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime

from ..exceptions import PersistenceError
from ..models import CachedRelease, Subscription, TrackedRepository, utc_now
from .base import ReleaseCache, SubscriptionRegistry, TrackedRepositoryStore

logger = logging.getLogger(__name__)


class MemoryBackend:
    """Shared dictionaries guarded by a single lock."""

    def __init__(self) -> None:
        self.repositories: dict[str, TrackedRepository] = {}
        self.releases: dict[str, CachedRelease] = {}
        self.subscriptions: dict[tuple[str, int], Subscription] = {}
        self.lock = asyncio.Lock()

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("Memory backend closed")


class InMemoryTrackedRepositoryStore(TrackedRepositoryStore):
    """Tracked repositories kept in memory."""

    def __init__(self, backend: MemoryBackend) -> None:
        self._backend = backend

    async def save(self, repository: TrackedRepository) -> None:
        async with self._backend.lock:
            url = str(repository.repository_url)
            for existing in self._backend.repositories.values():
                if existing.id != repository.id and str(existing.repository_url) == url:
                    raise PersistenceError(
                        f"Repository URL already tracked: {url}", operation="save"
                    )

            stored = self._backend.repositories.get(repository.id)
            created_at = stored.created_at if stored else repository.created_at
            # Don't share the caller's mutable object
            self._backend.repositories[repository.id] = replace(
                repository, created_at=created_at
            )

    async def find_all(self) -> list[TrackedRepository]:
        async with self._backend.lock:
            repositories = [replace(r) for r in self._backend.repositories.values()]
        return sorted(repositories, key=lambda r: r.created_at, reverse=True)

    async def find_by_id(self, repository_id: str) -> TrackedRepository | None:
        async with self._backend.lock:
            repository = self._backend.repositories.get(repository_id)
            return replace(repository) if repository else None

    async def find_by_url(self, repository_url: str) -> TrackedRepository | None:
        async with self._backend.lock:
            for repository in self._backend.repositories.values():
                if str(repository.repository_url) == repository_url:
                    return replace(repository)
        return None

    async def find_all_by_chat_id(self, chat_id: int) -> list[TrackedRepository]:
        async with self._backend.lock:
            repository_ids = {
                repo_id for repo_id, sub_chat in self._backend.subscriptions
                if sub_chat == chat_id
            }
            repositories = [
                replace(self._backend.repositories[repo_id])
                for repo_id in repository_ids
                if repo_id in self._backend.repositories
            ]
        return sorted(repositories, key=lambda r: r.created_at, reverse=True)

    async def delete(self, repository_id: str) -> bool:
        async with self._backend.lock:
            if self._backend.repositories.pop(repository_id, None) is None:
                return False

            self._backend.releases.pop(repository_id, None)
            for key in [k for k in self._backend.subscriptions if k[0] == repository_id]:
                del self._backend.subscriptions[key]

        logger.info(f"Deleted tracked repository {repository_id} with cascade")
        return True


class InMemoryReleaseCache(ReleaseCache):
    """Release cache kept in memory."""

    def __init__(self, backend: MemoryBackend) -> None:
        self._backend = backend

    async def get_latest(self, repository_id: str) -> CachedRelease | None:
        async with self._backend.lock:
            return self._backend.releases.get(repository_id)

    async def record_latest(
        self, repository_id: str, tag_name: str, seen_at: datetime
    ) -> None:
        async with self._backend.lock:
            if repository_id not in self._backend.repositories:
                # Same outcome as the foreign key constraint in SQLite
                raise PersistenceError(
                    f"Unknown tracked repository: {repository_id}",
                    operation="record_latest",
                )

            existing = self._backend.releases.get(repository_id)
            if existing is not None and existing.tag_name == tag_name:
                return

            self._backend.releases[repository_id] = CachedRelease(
                tracked_repository_id=repository_id,
                tag_name=tag_name,
                first_seen_at=seen_at,
            )

    async def find_by_tag(self, tag_name: str) -> list[CachedRelease]:
        async with self._backend.lock:
            return [
                release
                for release in self._backend.releases.values()
                if release.tag_name == tag_name
            ]


class InMemorySubscriptionRegistry(SubscriptionRegistry):
    """Subscriptions kept in memory."""

    def __init__(self, backend: MemoryBackend) -> None:
        self._backend = backend

    async def list_subscribers(self, repository_id: str) -> set[int]:
        async with self._backend.lock:
            return {
                chat_id
                for repo_id, chat_id in self._backend.subscriptions
                if repo_id == repository_id
            }

    async def subscribe(self, repository_id: str, chat_id: int) -> bool:
        async with self._backend.lock:
            if repository_id not in self._backend.repositories:
                raise PersistenceError(
                    f"Unknown tracked repository: {repository_id}",
                    operation="subscribe",
                )

            key = (repository_id, chat_id)
            if key in self._backend.subscriptions:
                return False
            self._backend.subscriptions[key] = Subscription(
                tracked_repository_id=repository_id,
                chat_id=chat_id,
                created_at=utc_now(),
            )
            return True

    async def unsubscribe(self, repository_id: str, chat_id: int) -> bool:
        async with self._backend.lock:
            return (
                self._backend.subscriptions.pop((repository_id, chat_id), None)
                is not None
            )
