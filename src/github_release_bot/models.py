"""
Domain models for the GitHub release bot.

Tracked repositories, cached releases and subscriptions mirror the persisted
schema; ReleaseInfo is what the release source hands back to the poll cycle.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from .exceptions import InvalidRepositoryUrlError

logger = structlog.get_logger(__name__)

GITHUB_URL_PREFIX = "https://github.com/"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _split_owner_and_repo(url: str) -> tuple[str, str] | None:
    if not url.startswith(GITHUB_URL_PREFIX):
        return None

    path = url[len(GITHUB_URL_PREFIX) :].split("?", 1)[0].split("#", 1)[0]
    parts = path.split("/")
    if len(parts) < 2:
        return None

    owner = parts[0].strip()
    repo = parts[1].strip()
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        return None
    return owner, repo


@dataclass(frozen=True)
class RepositoryUrl:
    """
    A validated ``https://github.com/<owner>/<repo>`` URL.

    The stored form is canonical: lowercase owner and repo, with any trailing
    path, query, fragment or ``.git`` suffix dropped. GitHub names are case
    insensitive, so two spellings of one repository compare equal.
    """

    url: str

    def __post_init__(self) -> None:
        owner_repo = _split_owner_and_repo(self.url.strip())
        if owner_repo is None:
            logger.warning("Invalid GitHub repository URL", url=self.url)
            raise InvalidRepositoryUrlError(
                f"Invalid GitHub repository URL: {self.url}",
                context={"url": self.url},
            )

        owner, repo = owner_repo
        object.__setattr__(
            self, "url", f"{GITHUB_URL_PREFIX}{owner.lower()}/{repo.lower()}"
        )

    @classmethod
    def from_storage(cls, url: str) -> "RepositoryUrl":
        """Build from a stored value without re-validating it."""
        instance = object.__new__(cls)
        object.__setattr__(instance, "url", url)
        return instance

    def owner_and_repo(self) -> tuple[str, str] | None:
        """Split the URL into ``(owner, repo)``, or None if it has no such parts."""
        return _split_owner_and_repo(self.url)

    @property
    def full_name(self) -> str | None:
        """``owner/repo`` form used by the GitHub API."""
        owner_repo = self.owner_and_repo()
        if owner_repo is None:
            return None
        return "/".join(owner_repo)

    def __str__(self) -> str:
        return self.url


@dataclass
class TrackedRepository:
    """A GitHub repository registered for release monitoring."""

    repository_name: str
    repository_url: RepositoryUrl
    chat_id: int | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class CachedRelease:
    """The last tag seen for a tracked repository."""

    tracked_repository_id: str
    tag_name: str
    first_seen_at: datetime


@dataclass(frozen=True)
class Subscription:
    """A chat subscribed to a tracked repository."""

    tracked_repository_id: str
    chat_id: int
    created_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ReleaseInfo:
    """Latest release reported by the release source."""

    tag_name: str
    published_at: datetime | None = None
    html_url: str | None = None
