"""
Basic tests for GitHub release bot configuration and wiring.
"""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

import github_release_bot.config
from github_release_bot.config import Settings, get_settings
from github_release_bot.exceptions import ConfigurationError
from github_release_bot.github_client import GitHubReleaseClient
from github_release_bot.telegram_notifier import TelegramNotifier


class TestSettings:
    """Test settings loading from the environment."""

    def setup_method(self):
        """Clear any cached settings first."""
        github_release_bot.config._settings_instance = None

    def teardown_method(self):
        github_release_bot.config._settings_instance = None

    def test_settings_creation(self):
        """Test that settings can be created with environment variables."""
        with patch.dict(
            "os.environ",
            {
                "TELEGRAM_BOT_TOKEN": "123:abc",
                "GITHUB_TOKEN": "ghp_test",
                "DATABASE_PATH": "/tmp/bot.db",
                "POLLING_INTERVAL_SECONDS": "120",
                "POLLING_CONCURRENT_REPOS": "8",
            },
            clear=True,
        ):
            settings = get_settings()

        assert settings.telegram_bot_token == "123:abc"
        assert settings.github_token == "ghp_test"
        assert settings.has_github_token is True
        assert settings.database_path == "/tmp/bot.db"
        assert settings.polling_interval_seconds == 120
        assert settings.polling_concurrent_repos == 8
        assert settings.storage_backend == "sqlite"
        assert settings.github_api_url == "https://api.github.com"

    def test_legacy_environment_names(self):
        """Test the alternative variable names are accepted."""
        with patch.dict(
            "os.environ",
            {
                "TELOXIDE_TOKEN": "456:def",
                "GITHUB_API_BASE": "https://github.example.com/api/v3",
                "INTERVAL_SECS": "30",
            },
            clear=True,
        ):
            settings = get_settings()

        assert settings.telegram_bot_token == "456:def"
        assert settings.github_api_url == "https://github.example.com/api/v3"
        assert settings.polling_interval_seconds == 30
        assert settings.has_github_token is False

    def test_missing_bot_token(self):
        """Test a clear error when the bot token is missing."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                get_settings()

        assert "TELEGRAM_BOT_TOKEN" in str(exc_info.value)
        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_settings_instance_is_cached(self):
        with patch.dict("os.environ", {"TELEGRAM_BOT_TOKEN": "1:a"}, clear=True):
            assert get_settings() is get_settings()

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            Settings(telegram_bot_token="1:a", log_level="LOUD")
        with pytest.raises(ValidationError):
            Settings(telegram_bot_token="1:a", storage_backend="postgres")
        with pytest.raises(ValidationError):
            Settings(telegram_bot_token="1:a", polling_interval_seconds=0)
        with pytest.raises(ValidationError):
            Settings(telegram_bot_token="1:a", log_format="xml")

    def test_normalized_values(self):
        settings = Settings(
            telegram_bot_token="1:a",
            log_level="debug",
            log_format="JSON",
            storage_backend="Memory",
        )
        assert settings.log_level == "DEBUG"
        assert settings.log_format == "json"
        assert settings.storage_backend == "memory"


def test_config_sections(test_settings):
    """Test the grouped configuration views."""
    telegram = test_settings.telegram_config
    assert telegram.bot_token == "123456:test-token"
    assert telegram.api_url == "https://telegram.test"

    storage = test_settings.storage_config
    assert storage.backend == "memory"

    polling = test_settings.polling_config
    assert polling.enabled is False
    assert polling.interval_seconds == 60
    assert polling.concurrent_repositories == 3

    server = test_settings.server_config
    assert server.port == 8000


def test_github_client_initialization(test_settings):
    """Test GitHub client can be initialized."""
    client = GitHubReleaseClient(test_settings)
    assert client is not None
    assert client.get_rate_limit_info() == {"remaining": None, "reset_time": None}


@pytest.mark.asyncio
async def test_notifier_initialization(test_settings):
    """Test the notifier is built from the Telegram section."""
    notifier = TelegramNotifier.from_config(test_settings.telegram_config)
    assert notifier._endpoint() == (
        "https://telegram.test/bot123456:test-token/sendMessage"
    )
    await notifier.aclose()
