"""
Pytest configuration and fixtures for GitHub release bot tests.
"""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from github_release_bot.config import Settings, StorageConfig
from github_release_bot.exceptions import DeliveryError, FetchError
from github_release_bot.models import ReleaseInfo, RepositoryUrl, TrackedRepository
from github_release_bot.storage import Storage, StorageFactory


class FakeReleaseSource:
    """Release source answering from a dict of URL -> tag (or exception)."""

    def __init__(self) -> None:
        self.releases: dict[str, ReleaseInfo | Exception] = {}
        self.calls: list[str] = []

    def set_tag(self, url: str, tag: str) -> None:
        self.releases[str(RepositoryUrl(url))] = ReleaseInfo(tag_name=tag)

    def set_error(self, url: str, error: Exception) -> None:
        self.releases[str(RepositoryUrl(url))] = error

    async def fetch_latest(self, repository_url: RepositoryUrl) -> ReleaseInfo:
        url = str(repository_url)
        self.calls.append(url)
        answer = self.releases.get(url)
        if answer is None:
            raise FetchError(f"No fake release for {url}", repository_url=url)
        if isinstance(answer, Exception):
            raise answer
        return answer


class RecordingNotifier:
    """Notifier that records deliveries and fails for selected chats."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []
        self.failing_chats: dict[int, Exception] = {}

    def fail_for(self, chat_id: int, error: Exception | None = None) -> None:
        self.failing_chats[chat_id] = error or DeliveryError(
            "Bot API error 400: Bad Request", chat_id=chat_id, status_code=400
        )

    async def send(self, chat_id: int, text: str) -> None:
        if chat_id in self.failing_chats:
            raise self.failing_chats[chat_id]
        self.sent.append((chat_id, text))

    def chats_for(self, needle: str) -> list[int]:
        return [chat_id for chat_id, text in self.sent if needle in text]


@pytest.fixture
def test_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        telegram_bot_token="123456:test-token",
        telegram_api_url="https://telegram.test",
        github_token="test-github-token",
        storage_backend="memory",
        polling_enabled=False,
        polling_interval_seconds=60,
        polling_concurrent_repos=3,
        log_level="DEBUG",
    )


@pytest_asyncio.fixture
async def memory_storage() -> AsyncIterator[Storage]:
    """In-memory storage bundle."""
    storage = await StorageFactory.create(StorageConfig(backend="memory"))
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def sqlite_storage(tmp_path) -> AsyncIterator[Storage]:
    """SQLite storage bundle in a temporary directory."""
    storage = await StorageFactory.create(
        StorageConfig(backend="sqlite", database_path=str(tmp_path / "bot.db"))
    )
    yield storage
    await storage.close()


@pytest.fixture
def release_source() -> FakeReleaseSource:
    return FakeReleaseSource()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_repository():
    """Factory for tracked repositories."""

    def _make(name: str = "repo", owner: str = "octo", chat_id: int | None = 1):
        return TrackedRepository(
            repository_name=name,
            repository_url=RepositoryUrl(f"https://github.com/{owner}/{name}"),
            chat_id=chat_id,
        )

    return _make
