"""
Custom exceptions for the GitHub release bot.

This module defines the error taxonomy used across the release source,
the notifier and the storage backends. Per-repository and per-chat errors are
reported by the poll cycle; they never escalate to a cycle-wide failure.
"""

from typing import Any


class ReleaseBotError(Exception):
    """Base exception for GitHub release bot errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "RELEASE_BOT_ERROR"
        self.context = context or {}


class FetchError(ReleaseBotError):
    """Exception for failures while querying the upstream release source."""

    def __init__(
        self,
        message: str,
        repository_url: str | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code or "FETCH_ERROR", context)
        self.repository_url = repository_url


class ReleaseSourceUnavailableError(FetchError):
    """Network failure or non-success answer from the release source."""

    def __init__(
        self,
        message: str,
        repository_url: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, repository_url, "RELEASE_SOURCE_UNAVAILABLE", context)
        self.status_code = status_code


class RateLimitError(FetchError):
    """Exception for rate limit related errors."""

    def __init__(
        self,
        message: str,
        repository_url: str | None = None,
        reset_time: float | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, repository_url, "RATE_LIMIT_ERROR", context)
        self.reset_time = reset_time


class RepositoryNotFoundError(FetchError):
    """The tracked repository does not exist (or is not visible) upstream."""

    def __init__(
        self,
        message: str,
        repository_url: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, repository_url, "REPOSITORY_NOT_FOUND", context)


class NoReleasesError(FetchError):
    """The repository has neither a published release nor a tag yet."""

    def __init__(
        self,
        message: str,
        repository_url: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, repository_url, "NO_RELEASES", context)


class DeliveryError(ReleaseBotError):
    """Exception for a notification that could not be delivered to a chat."""

    def __init__(
        self,
        message: str,
        chat_id: int | None = None,
        status_code: int | None = None,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, code or "DELIVERY_ERROR", context)
        self.chat_id = chat_id
        self.status_code = status_code


class ChatUnreachableError(DeliveryError):
    """The chat does not exist or has blocked the bot."""

    def __init__(
        self,
        message: str,
        chat_id: int | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, chat_id, status_code, "CHAT_UNREACHABLE", context)


class PersistenceError(ReleaseBotError):
    """Exception for storage backend failures."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "PERSISTENCE_ERROR", context)
        self.operation = operation


class InvalidRepositoryUrlError(ReleaseBotError, ValueError):
    """Exception for repository URLs that do not point at GitHub."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "INVALID_REPOSITORY_URL", context)


class ConfigurationError(ReleaseBotError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)
