"""
SQLite storage backend built on aiosqlite.

Stores:
- tracked_repositories: repositories registered for release monitoring
- tracked_repository_releases: last seen tag per repository (cache, not history)
- subscriptions: (repository, chat) pairs to notify

Foreign keys are enabled per connection so deleting a repository cascades to
its cache row and subscriptions.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import aiosqlite

from ..exceptions import PersistenceError
from ..models import CachedRelease, RepositoryUrl, TrackedRepository, utc_now
from .base import ReleaseCache, SubscriptionRegistry, TrackedRepositoryStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tracked_repositories (
    id              TEXT PRIMARY KEY NOT NULL,
    repository_name TEXT NOT NULL,
    repository_url  TEXT NOT NULL UNIQUE,
    chat_id         INTEGER,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tracked_repositories_repository_name
    ON tracked_repositories(repository_name);

CREATE INDEX IF NOT EXISTS idx_tracked_repositories_chat_id
    ON tracked_repositories(chat_id);

CREATE TABLE IF NOT EXISTS tracked_repository_releases (
    tracked_repository_id TEXT PRIMARY KEY NOT NULL,
    tag_name              TEXT NOT NULL,
    first_seen_at         TEXT NOT NULL,
    FOREIGN KEY (tracked_repository_id)
        REFERENCES tracked_repositories(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_tracked_repository_releases_tag_name
    ON tracked_repository_releases(tag_name);

CREATE TABLE IF NOT EXISTS subscriptions (
    tracked_repository_id TEXT NOT NULL,
    chat_id               INTEGER NOT NULL,
    created_at            TEXT NOT NULL,
    PRIMARY KEY (tracked_repository_id, chat_id),
    FOREIGN KEY (tracked_repository_id)
        REFERENCES tracked_repositories(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_subscriptions_chat_id
    ON subscriptions(chat_id);
"""


def _to_text(value: datetime) -> str:
    return value.isoformat()


def _from_text(value: str) -> datetime:
    return datetime.fromisoformat(value)


class SqliteDatabase:
    """Single aiosqlite connection shared by the SQLite stores."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        # Writes and their commit or rollback share one connection transaction
        self._write_lock = asyncio.Lock()

    async def open(self) -> None:
        """Connect, enable foreign keys and create the schema."""
        try:
            if self._db_path != ":memory:":
                os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA foreign_keys = ON")
            await self._db.executescript(_SCHEMA)
            await self._db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(
                f"Failed to open database {self._db_path}: {e}", operation="open"
            ) from e
        logger.debug(f"Database initialized at {self._db_path}")

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError("Database is not open", operation="connect")
        return self._db

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except aiosqlite.Error as e:
            logger.error(f"Database operation {operation} failed: {e}")
            raise PersistenceError(
                f"Database operation {operation} failed: {e}", operation=operation
            ) from e

    async def execute_write(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> int:
        """Run one write statement and commit it; returns the affected row count."""
        async with self._write_lock, self._translate_errors(operation):
            connection = self.connection
            try:
                cursor = await connection.execute(sql, params)
                await connection.commit()
            except aiosqlite.Error:
                await connection.rollback()
                raise
            return cursor.rowcount

    async def fetch_all(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> list[aiosqlite.Row]:
        async with self._translate_errors(operation):
            cursor = await self.connection.execute(sql, params)
            return list(await cursor.fetchall())

    async def fetch_one(
        self, operation: str, sql: str, params: Sequence[Any] = ()
    ) -> aiosqlite.Row | None:
        async with self._translate_errors(operation):
            cursor = await self.connection.execute(sql, params)
            return await cursor.fetchone()

    async def health_check(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            await self.fetch_one("health_check", "SELECT 1")
        except PersistenceError:
            return False
        return True


def _row_to_repository(row: aiosqlite.Row) -> TrackedRepository:
    return TrackedRepository(
        id=row["id"],
        repository_name=row["repository_name"],
        # Stored values were validated on the way in
        repository_url=RepositoryUrl.from_storage(row["repository_url"]),
        chat_id=row["chat_id"],
        created_at=_from_text(row["created_at"]),
        updated_at=_from_text(row["updated_at"]),
    )


def _row_to_release(row: aiosqlite.Row) -> CachedRelease:
    return CachedRelease(
        tracked_repository_id=row["tracked_repository_id"],
        tag_name=row["tag_name"],
        first_seen_at=_from_text(row["first_seen_at"]),
    )


class SqliteTrackedRepositoryStore(TrackedRepositoryStore):
    """Tracked repositories persisted in SQLite."""

    _COLUMNS = "id, repository_name, repository_url, chat_id, created_at, updated_at"

    def __init__(self, database: SqliteDatabase) -> None:
        self._database = database

    async def save(self, repository: TrackedRepository) -> None:
        await self._database.execute_write(
            "save_repository",
            """
            INSERT INTO tracked_repositories
                (id, repository_name, repository_url, chat_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                repository_name = excluded.repository_name,
                repository_url = excluded.repository_url,
                chat_id = excluded.chat_id,
                updated_at = excluded.updated_at
            """,
            (
                repository.id,
                repository.repository_name,
                str(repository.repository_url),
                repository.chat_id,
                _to_text(repository.created_at),
                _to_text(repository.updated_at),
            ),
        )

    async def find_all(self) -> list[TrackedRepository]:
        rows = await self._database.fetch_all(
            "find_all_repositories",
            f"SELECT {self._COLUMNS} FROM tracked_repositories ORDER BY created_at DESC",
        )
        return [_row_to_repository(row) for row in rows]

    async def find_by_id(self, repository_id: str) -> TrackedRepository | None:
        row = await self._database.fetch_one(
            "find_repository_by_id",
            f"SELECT {self._COLUMNS} FROM tracked_repositories WHERE id = ?",
            (repository_id,),
        )
        return _row_to_repository(row) if row else None

    async def find_by_url(self, repository_url: str) -> TrackedRepository | None:
        row = await self._database.fetch_one(
            "find_repository_by_url",
            f"SELECT {self._COLUMNS} FROM tracked_repositories WHERE repository_url = ?",
            (repository_url,),
        )
        return _row_to_repository(row) if row else None

    async def find_all_by_chat_id(self, chat_id: int) -> list[TrackedRepository]:
        rows = await self._database.fetch_all(
            "find_repositories_by_chat_id",
            """
            SELECT r.id, r.repository_name, r.repository_url, r.chat_id,
                   r.created_at, r.updated_at
            FROM tracked_repositories r
            JOIN subscriptions s ON s.tracked_repository_id = r.id
            WHERE s.chat_id = ?
            ORDER BY r.created_at DESC
            """,
            (chat_id,),
        )
        return [_row_to_repository(row) for row in rows]

    async def delete(self, repository_id: str) -> bool:
        deleted = await self._database.execute_write(
            "delete_repository",
            "DELETE FROM tracked_repositories WHERE id = ?",
            (repository_id,),
        )
        if deleted:
            logger.info(f"Deleted tracked repository {repository_id} with cascade")
        return deleted > 0


class SqliteReleaseCache(ReleaseCache):
    """Release cache persisted in SQLite."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._database = database

    async def get_latest(self, repository_id: str) -> CachedRelease | None:
        row = await self._database.fetch_one(
            "get_latest_release",
            """
            SELECT tracked_repository_id, tag_name, first_seen_at
            FROM tracked_repository_releases
            WHERE tracked_repository_id = ?
            """,
            (repository_id,),
        )
        return _row_to_release(row) if row else None

    async def record_latest(
        self, repository_id: str, tag_name: str, seen_at: datetime
    ) -> None:
        # first_seen_at only moves when the tag changes
        await self._database.execute_write(
            "record_latest_release",
            """
            INSERT INTO tracked_repository_releases
                (tracked_repository_id, tag_name, first_seen_at)
            VALUES (?, ?, ?)
            ON CONFLICT(tracked_repository_id) DO UPDATE SET
                tag_name = excluded.tag_name,
                first_seen_at = CASE
                    WHEN excluded.tag_name != tag_name THEN excluded.first_seen_at
                    ELSE first_seen_at
                END
            """,
            (repository_id, tag_name, _to_text(seen_at)),
        )

    async def find_by_tag(self, tag_name: str) -> list[CachedRelease]:
        rows = await self._database.fetch_all(
            "find_releases_by_tag",
            """
            SELECT tracked_repository_id, tag_name, first_seen_at
            FROM tracked_repository_releases
            WHERE tag_name = ?
            """,
            (tag_name,),
        )
        return [_row_to_release(row) for row in rows]


class SqliteSubscriptionRegistry(SubscriptionRegistry):
    """Subscriptions persisted in SQLite."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._database = database

    async def list_subscribers(self, repository_id: str) -> set[int]:
        rows = await self._database.fetch_all(
            "list_subscribers",
            "SELECT chat_id FROM subscriptions WHERE tracked_repository_id = ?",
            (repository_id,),
        )
        return {int(row["chat_id"]) for row in rows}

    async def subscribe(self, repository_id: str, chat_id: int) -> bool:
        created = await self._database.execute_write(
            "subscribe",
            """
            INSERT INTO subscriptions (tracked_repository_id, chat_id, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(tracked_repository_id, chat_id) DO NOTHING
            """,
            (repository_id, chat_id, _to_text(utc_now())),
        )
        return created > 0

    async def unsubscribe(self, repository_id: str, chat_id: int) -> bool:
        removed = await self._database.execute_write(
            "unsubscribe",
            "DELETE FROM subscriptions WHERE tracked_repository_id = ? AND chat_id = ?",
            (repository_id, chat_id),
        )
        return removed > 0
