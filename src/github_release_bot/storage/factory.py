"""
Storage factory for the GitHub release bot.

Builds the store bundle for the configured backend (sqlite or memory).
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from ..exceptions import ConfigurationError
from .base import ReleaseCache, SubscriptionRegistry, TrackedRepositoryStore
from .memory import (
    InMemoryReleaseCache,
    InMemorySubscriptionRegistry,
    InMemoryTrackedRepositoryStore,
    MemoryBackend,
)
from .sqlite import (
    SqliteDatabase,
    SqliteReleaseCache,
    SqliteSubscriptionRegistry,
    SqliteTrackedRepositoryStore,
)

logger = logging.getLogger(__name__)


class _Backend(Protocol):
    async def health_check(self) -> bool: ...

    async def close(self) -> None: ...


@dataclass
class Storage:
    """The three stores plus the backend that owns their connection."""

    repositories: TrackedRepositoryStore
    releases: ReleaseCache
    subscriptions: SubscriptionRegistry
    backend: _Backend

    async def health_check(self) -> bool:
        return await self.backend.health_check()

    async def close(self) -> None:
        await self.backend.close()


class StorageFactory:
    """Factory for creating the storage bundle based on configuration."""

    @staticmethod
    async def create(config: Any) -> Storage:
        """
        Create and open a storage bundle.

        Args:
            config: StorageConfig (backend, database_path)

        Returns:
            Storage instance

        Raises:
            ConfigurationError: If the backend is not supported
            PersistenceError: If the database cannot be opened
        """
        backend = config.backend.lower()

        if backend == "memory":
            logger.info("Creating in-memory storage")
            memory = MemoryBackend()
            return Storage(
                repositories=InMemoryTrackedRepositoryStore(memory),
                releases=InMemoryReleaseCache(memory),
                subscriptions=InMemorySubscriptionRegistry(memory),
                backend=memory,
            )
        elif backend == "sqlite":
            logger.info(f"Creating SQLite storage at {config.database_path}")
            database = SqliteDatabase(config.database_path)
            await database.open()
            return Storage(
                repositories=SqliteTrackedRepositoryStore(database),
                releases=SqliteReleaseCache(database),
                subscriptions=SqliteSubscriptionRegistry(database),
                backend=database,
            )
        else:
            raise ConfigurationError(
                f"Unknown storage backend: {backend}. "
                f"Supported backends: {', '.join(StorageFactory.get_supported_backends())}"
            )

    @staticmethod
    def get_supported_backends() -> list[str]:
        """Get list of supported storage backends."""
        return ["sqlite", "memory"]
