"""
Tests for the tracking service behind the chat commands.
"""

from datetime import UTC, datetime

import pytest

from github_release_bot.exceptions import InvalidRepositoryUrlError
from github_release_bot.tracking import TrackingService, TrackStatus


@pytest.fixture
def service(memory_storage):
    return TrackingService(
        memory_storage.repositories,
        memory_storage.subscriptions,
        memory_storage.releases,
    )


class TestTrack:
    """Test /track semantics."""

    @pytest.mark.asyncio
    async def test_new_repository(self, service, memory_storage):
        result = await service.track(10, "hello", "https://github.com/octo/hello.git")

        assert result.status is TrackStatus.CREATED
        assert result.message == (
            "Now tracking hello (https://github.com/octo/hello)."
        )
        assert result.repository.chat_id == 10
        subscribers = await memory_storage.subscriptions.list_subscribers(
            result.repository.id
        )
        assert subscribers == {10}

    @pytest.mark.asyncio
    async def test_tracking_does_not_touch_release_cache(
        self, service, memory_storage
    ):
        result = await service.track(10, "hello", "https://github.com/octo/hello")

        assert await memory_storage.releases.get_latest(result.repository.id) is None

    @pytest.mark.asyncio
    async def test_second_chat_subscribes(self, service, memory_storage):
        first = await service.track(10, "hello", "https://github.com/octo/hello")
        second = await service.track(20, "Hello World", "https://github.com/octo/hello/")

        assert second.status is TrackStatus.SUBSCRIBED
        assert second.repository.id == first.repository.id
        assert second.message.startswith("Updated tracking for Hello World")
        stored = await memory_storage.repositories.find_by_id(first.repository.id)
        assert stored.repository_name == "Hello World"
        # The registering chat is informational and stays as it was
        assert stored.chat_id == 10
        assert await memory_storage.subscriptions.list_subscribers(
            first.repository.id
        ) == {10, 20}
        assert len(await memory_storage.repositories.find_all()) == 1

    @pytest.mark.asyncio
    async def test_already_tracking(self, service):
        await service.track(10, "hello", "https://github.com/octo/hello")
        result = await service.track(10, "other name", "https://github.com/octo/hello")

        assert result.status is TrackStatus.ALREADY_SUBSCRIBED
        assert result.message == (
            "This chat is already tracking hello (https://github.com/octo/hello)."
        )

    @pytest.mark.asyncio
    async def test_invalid_url(self, service, memory_storage):
        with pytest.raises(InvalidRepositoryUrlError):
            await service.track(10, "hello", "https://gitlab.com/octo/hello")

        assert await memory_storage.repositories.find_all() == []

    @pytest.mark.asyncio
    async def test_empty_name(self, service):
        with pytest.raises(InvalidRepositoryUrlError):
            await service.track(10, "   ", "https://github.com/octo/hello")

    @pytest.mark.asyncio
    async def test_url_spellings_share_one_repository(self, service, memory_storage):
        first = await service.track(10, "hello", "https://github.com/octo/hello")
        again = await service.track(10, "hello", "https://github.com/Octo/Hello")
        releases = await service.track(
            10, "hello", "https://github.com/octo/hello/releases"
        )
        other_chat = await service.track(20, "hello", "https://github.com/OCTO/hello.git")

        assert again.status is TrackStatus.ALREADY_SUBSCRIBED
        assert releases.status is TrackStatus.ALREADY_SUBSCRIBED
        assert other_chat.status is TrackStatus.SUBSCRIBED
        assert other_chat.repository.id == first.repository.id
        assert len(await memory_storage.repositories.find_all()) == 1
        assert await memory_storage.subscriptions.list_subscribers(
            first.repository.id
        ) == {10, 20}

    @pytest.mark.asyncio
    async def test_owner_only_url_rejected(self, service, memory_storage):
        with pytest.raises(InvalidRepositoryUrlError):
            await service.track(10, "octo", "https://github.com/octo")

        assert await memory_storage.repositories.find_all() == []


class TestUntrackAndList:
    """Test unsubscribing, removal and listing."""

    @pytest.mark.asyncio
    async def test_untrack_keeps_repository_for_other_chats(
        self, service, memory_storage
    ):
        result = await service.track(10, "hello", "https://github.com/octo/hello")
        await service.track(20, "hello", "https://github.com/octo/hello")

        assert await service.untrack(10, "https://github.com/octo/hello") is True

        assert await memory_storage.repositories.find_by_id(result.repository.id)
        assert await memory_storage.subscriptions.list_subscribers(
            result.repository.id
        ) == {20}

    @pytest.mark.asyncio
    async def test_last_subscriber_removes_repository(self, service, memory_storage):
        result = await service.track(10, "hello", "https://github.com/octo/hello")
        await memory_storage.releases.record_latest(
            result.repository.id, "v1", datetime(2024, 1, 1, tzinfo=UTC)
        )

        assert await service.untrack(10, "https://github.com/octo/hello") is True

        assert await memory_storage.repositories.find_by_id(result.repository.id) is None
        assert await memory_storage.releases.get_latest(result.repository.id) is None

    @pytest.mark.asyncio
    async def test_untrack_unknown(self, service):
        assert await service.untrack(10, "https://github.com/octo/missing") is False

    @pytest.mark.asyncio
    async def test_untrack_not_subscribed(self, service):
        await service.track(10, "hello", "https://github.com/octo/hello")

        assert await service.untrack(99, "https://github.com/octo/hello") is False

    @pytest.mark.asyncio
    async def test_remove(self, service, memory_storage):
        await service.track(10, "hello", "https://github.com/octo/hello")
        await service.track(20, "hello", "https://github.com/octo/hello")

        assert await service.remove("https://github.com/octo/hello") is True
        assert await service.remove("https://github.com/octo/hello") is False
        assert await memory_storage.repositories.find_all() == []

    @pytest.mark.asyncio
    async def test_list_for_chat(self, service, memory_storage):
        hello = await service.track(10, "hello", "https://github.com/octo/hello")
        await service.track(10, "world", "https://github.com/octo/world")
        await service.track(20, "other", "https://github.com/octo/other")
        await memory_storage.releases.record_latest(
            hello.repository.id, "v1.0.0", datetime(2024, 1, 1, tzinfo=UTC)
        )

        views = await service.list_for_chat(10)

        tags = {view.repository.repository_name: view.latest_tag for view in views}
        assert tags == {"hello": "v1.0.0", "world": None}
        assert await service.list_for_chat(30) == []
