"""
Configuration management for the GitHub release bot.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class TelegramConfig(BaseModel):
    """Telegram Bot API configuration settings."""

    bot_token: str = Field(..., description="Telegram bot token")
    api_url: str = Field(
        default="https://api.telegram.org", description="Telegram Bot API URL"
    )
    timeout_seconds: float = Field(default=10.0, description="Request timeout")
    max_retries: int = Field(
        default=1, description="Extra attempts when Telegram answers 429"
    )


class StorageConfig(BaseModel):
    """Storage backend configuration settings."""

    backend: str = Field(default="sqlite", description="Storage backend")
    database_path: str = Field(
        default="./github_release_bot.db", description="SQLite database path"
    )


class PollingConfig(BaseModel):
    """Polling configuration settings."""

    enabled: bool = Field(default=True, description="Enable the poll scheduler")
    interval_seconds: int = Field(
        default=300, description="Delay between poll cycles in seconds"
    )
    concurrent_repositories: int = Field(
        default=5, description="Number of repositories to poll concurrently"
    )


class ServerConfig(BaseModel):
    """Status server configuration settings."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Telegram configuration
    telegram_bot_token: str = Field(
        ...,
        validation_alias=AliasChoices("telegram_bot_token", "teloxide_token"),
        description="Telegram bot token",
    )
    telegram_api_url: str = Field(
        default="https://api.telegram.org", description="Telegram Bot API URL"
    )
    telegram_timeout_seconds: float = Field(
        default=10.0, description="Telegram request timeout in seconds"
    )
    telegram_max_retries: int = Field(
        default=1, description="Extra attempts when Telegram answers 429"
    )

    # GitHub configuration
    github_token: str = Field(
        default="", description="GitHub Personal Access Token (optional)"
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        validation_alias=AliasChoices("github_api_url", "github_api_base"),
        description="GitHub API URL",
    )

    # Storage configuration
    storage_backend: str = Field(default="sqlite", description="sqlite or memory")
    database_path: str = Field(
        default="./github_release_bot.db", description="SQLite database path"
    )

    # Polling configuration
    polling_enabled: bool = Field(default=True, description="Enable polling")
    polling_interval_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices("polling_interval_seconds", "interval_secs"),
        description="Delay between poll cycles in seconds",
    )
    polling_concurrent_repos: int = Field(
        default=5, description="Number of repositories to poll concurrently"
    )

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", description="Log format")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate storage backend."""
        if v.lower() not in {"sqlite", "memory"}:
            raise ValueError(f"Invalid storage backend: {v}")
        return v.lower()

    @field_validator("polling_interval_seconds", "polling_concurrent_repos")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate polling numbers are positive."""
        if v < 1:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @property
    def telegram_config(self) -> TelegramConfig:
        """Get Telegram configuration."""
        return TelegramConfig(
            bot_token=self.telegram_bot_token,
            api_url=self.telegram_api_url,
            timeout_seconds=self.telegram_timeout_seconds,
            max_retries=self.telegram_max_retries,
        )

    @property
    def storage_config(self) -> StorageConfig:
        """Get storage configuration."""
        return StorageConfig(
            backend=self.storage_backend, database_path=self.database_path
        )

    @property
    def polling_config(self) -> PollingConfig:
        """Get polling configuration."""
        return PollingConfig(
            enabled=self.polling_enabled,
            interval_seconds=self.polling_interval_seconds,
            concurrent_repositories=self.polling_concurrent_repos,
        )

    @property
    def server_config(self) -> ServerConfig:
        """Get server configuration."""
        return ServerConfig(host=self.host, port=self.port, debug=self.debug)

    @property
    def has_github_token(self) -> bool:
        """Check if an authenticated GitHub token is configured."""
        return bool(self.github_token)


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = Settings()  # type: ignore[call-arg,unused-ignore]
        except ValueError as e:
            if "telegram_bot_token" in str(e):
                raise ConfigurationError(
                    "TELEGRAM_BOT_TOKEN environment variable is required. "
                    "Please set it to the token issued by @BotFather."
                ) from e
            raise
    return _settings_instance
