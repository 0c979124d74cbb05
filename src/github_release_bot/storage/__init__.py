"""
Storage for the GitHub release bot.

This package provides the storage ports used by the poll cycle and the
tracking service, with SQLite and in-memory backends.
"""

from .base import ReleaseCache, SubscriptionRegistry, TrackedRepositoryStore
from .factory import Storage, StorageFactory

__all__ = [
    "ReleaseCache",
    "Storage",
    "StorageFactory",
    "SubscriptionRegistry",
    "TrackedRepositoryStore",
]
