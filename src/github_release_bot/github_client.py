"""
GitHub API client for the GitHub release bot.

This module provides the release source used by the poll cycle: given a
tracked repository URL it returns the latest release tag, falling back to the
newest tag when the repository publishes tags without releases.
"""

import asyncio
import time
from typing import Any

import structlog
from github import (
    Auth,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)
from github.Repository import Repository

from .exceptions import (
    NoReleasesError,
    RateLimitError,
    ReleaseSourceUnavailableError,
    RepositoryNotFoundError,
)
from .models import ReleaseInfo, RepositoryUrl

logger = structlog.get_logger(__name__)


class GitHubReleaseClient:
    """
    GitHub API client for latest-release lookups.

    PyGithub is synchronous, so each lookup runs in a worker thread; the poll
    cycle can therefore query several repositories concurrently.
    """

    def __init__(self, config: Any, github: Github | None = None) -> None:
        """
        Initialize the GitHub client.

        Args:
            config: Settings object (github_token, github_api_url)
            github: Pre-built PyGithub instance, mainly for tests
        """
        self.config = config
        self._github: Github | None = github
        self._rate_limit_reset_time: float | None = None
        self._rate_limit_remaining: int | None = None

    def _get_github_instance(self) -> Github:
        """Get the (optionally authenticated) GitHub instance."""
        if self._github is None:
            token = getattr(self.config, "github_token", "")
            base_url = getattr(self.config, "github_api_url", "https://api.github.com")
            if token:
                self._github = Github(
                    auth=Auth.Token(token), base_url=base_url, per_page=1
                )
                logger.info("GitHub client configured (token mode)")
            else:
                self._github = Github(base_url=base_url, per_page=1)
                logger.info("GitHub client configured (anonymous mode)")
        return self._github

    async def _check_rate_limit(self) -> None:
        """Check and handle rate limiting."""
        if self._rate_limit_remaining is not None and self._rate_limit_remaining <= 10:
            if (
                self._rate_limit_reset_time
                and time.time() < self._rate_limit_reset_time
            ):
                sleep_time = self._rate_limit_reset_time - time.time()
                logger.warning(
                    "Rate limit approaching, sleeping",
                    sleep_time=sleep_time,
                    remaining=self._rate_limit_remaining,
                )
                await asyncio.sleep(sleep_time)

    def _update_rate_limit_info(self, github_instance: Github) -> None:
        """Update rate limit information from the last GitHub response."""
        try:
            remaining, _limit = github_instance.rate_limiting
            self._rate_limit_remaining = int(remaining)
            self._rate_limit_reset_time = float(github_instance.rate_limiting_resettime)
        except Exception as e:
            logger.warning("Failed to get rate limit info", error=str(e))

    def get_rate_limit_info(self) -> dict[str, Any]:
        """Last observed rate limit headroom, for the status endpoint."""
        return {
            "remaining": self._rate_limit_remaining,
            "reset_time": self._rate_limit_reset_time,
        }

    async def fetch_latest(self, repository_url: RepositoryUrl) -> ReleaseInfo:
        """
        Get the latest release of a repository.

        Args:
            repository_url: Tracked repository URL

        Returns:
            ReleaseInfo for the latest release (or newest tag)

        Raises:
            RepositoryNotFoundError: URL is not a repository or does not exist
            NoReleasesError: Repository has no releases and no tags
            RateLimitError: GitHub rate limit exhausted
            ReleaseSourceUnavailableError: Any other API or network failure
        """
        url = str(repository_url)
        full_name = repository_url.full_name
        if full_name is None:
            raise RepositoryNotFoundError(
                f"Cannot derive owner/repo from {url}", repository_url=url
            )

        await self._check_rate_limit()

        github_instance = self._get_github_instance()
        try:
            release = await asyncio.to_thread(
                self._fetch_latest_sync, github_instance, full_name, url
            )
        except RateLimitExceededException as e:
            self._update_rate_limit_info(github_instance)
            raise RateLimitError(
                f"GitHub rate limit exceeded while fetching {full_name}",
                repository_url=url,
                reset_time=self._rate_limit_reset_time,
            ) from e
        except GithubException as e:
            logger.warning(
                "GitHub releases request failed",
                repository=full_name,
                status=e.status,
                error=str(e),
            )
            raise ReleaseSourceUnavailableError(
                f"GitHub API returned status {e.status} for {full_name}",
                repository_url=url,
                status_code=e.status,
            ) from e
        except OSError as e:
            # requests' connection errors are OSError subclasses
            raise ReleaseSourceUnavailableError(
                f"Failed to reach GitHub for {full_name}: {e}", repository_url=url
            ) from e

        self._update_rate_limit_info(github_instance)
        logger.debug(
            "Latest release fetched", repository=full_name, tag=release.tag_name
        )
        return release

    def _fetch_latest_sync(
        self, github_instance: Github, full_name: str, url: str
    ) -> ReleaseInfo:
        """
        Blocking lookup, run in a worker thread.

        The repository handle is lazy, so a lookup costs one request
        (`/releases/latest`) or two when it falls back to `/tags`.
        """
        repo = github_instance.get_repo(full_name, lazy=True)

        try:
            release = repo.get_latest_release()
        except UnknownObjectException:
            return self._fetch_newest_tag(repo, full_name, url)

        if not release.tag_name:
            raise NoReleasesError(
                f"Latest release for {full_name} has an empty tag", repository_url=url
            )

        return ReleaseInfo(
            tag_name=release.tag_name,
            published_at=release.published_at,
            html_url=release.html_url,
        )

    def _fetch_newest_tag(
        self, repo: Repository, full_name: str, url: str
    ) -> ReleaseInfo:
        """Fallback for repositories that publish tags but no releases."""
        try:
            newest = next(iter(repo.get_tags()), None)
        except UnknownObjectException as e:
            # /releases/latest and /tags both 404 only when the repository is missing
            raise RepositoryNotFoundError(
                f"Repository {full_name} not found", repository_url=url
            ) from e

        if newest is None:
            raise NoReleasesError(
                f"Repository {full_name} has no releases or tags", repository_url=url
            )

        logger.debug("Using newest tag as release", repository=full_name, tag=newest.name)
        return ReleaseInfo(tag_name=newest.name)
