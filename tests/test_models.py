"""
Tests for repository URL validation and release message formatting.
"""

import pytest

from github_release_bot.exceptions import InvalidRepositoryUrlError
from github_release_bot.models import ReleaseInfo, RepositoryUrl, TrackedRepository
from github_release_bot.telegram_notifier import (
    build_release_url,
    format_release_message,
)


class TestRepositoryUrl:
    """Test RepositoryUrl validation and parsing."""

    def test_valid_url(self):
        url = RepositoryUrl("https://github.com/rust-lang/rust")
        assert str(url) == "https://github.com/rust-lang/rust"
        assert url.owner_and_repo() == ("rust-lang", "rust")
        assert url.full_name == "rust-lang/rust"

    @pytest.mark.parametrize(
        "raw",
        [
            "  https://github.com/octo/hello  ",
            "https://github.com/octo/hello/",
            "https://github.com/octo/hello.git",
            "https://github.com/Octo/Hello",
            "https://github.com/octo/hello/releases",
            "https://github.com/octo/hello/tree/main",
            "https://github.com/octo/hello?tab=readme-ov-file",
            "https://github.com/octo/hello#install",
        ],
    )
    def test_normalization(self, raw):
        assert str(RepositoryUrl(raw)) == "https://github.com/octo/hello"

    @pytest.mark.parametrize(
        "raw",
        [
            "http://github.com/octo/hello",
            "https://gitlab.com/octo/hello",
            "github.com/octo/hello",
            "https://github.com/octo",
            "https://github.com/octo/",
            "https://github.com/",
            "https://github.com//hello",
            "",
        ],
    )
    def test_rejects_invalid_urls(self, raw):
        with pytest.raises(InvalidRepositoryUrlError) as exc_info:
            RepositoryUrl(raw)
        assert exc_info.value.code == "INVALID_REPOSITORY_URL"

    def test_invalid_url_is_a_value_error(self):
        with pytest.raises(ValueError):
            RepositoryUrl("ftp://github.com/octo/hello")

    def test_spellings_of_one_repository_are_equal(self):
        assert RepositoryUrl("https://github.com/Octo/Hello.git") == RepositoryUrl(
            "https://github.com/octo/hello/releases/"
        )

    def test_stored_owner_only_url_has_no_full_name(self):
        url = RepositoryUrl.from_storage("https://github.com/octo")
        assert url.owner_and_repo() is None
        assert url.full_name is None

    def test_from_storage_keeps_value(self):
        url = RepositoryUrl.from_storage("https://github.com/octo/hello")
        assert url == RepositoryUrl("https://github.com/octo/hello")


class TestReleaseMessage:
    """Test the HTML release announcement."""

    def setup_method(self):
        self.repository = TrackedRepository(
            repository_name="hello",
            repository_url=RepositoryUrl("https://github.com/octo/hello"),
        )

    def test_message_format(self):
        message = format_release_message(self.repository, ReleaseInfo(tag_name="v1.2.0"))
        assert message == (
            'New release for <a href="https://github.com/octo/hello">hello</a>: '
            '<a href="https://github.com/octo/hello/releases/tag/v1.2.0"><b>v1.2.0</b></a>'
        )

    def test_values_are_escaped(self):
        repository = TrackedRepository(
            repository_name="<script>&co",
            repository_url=RepositoryUrl("https://github.com/octo/hello"),
        )
        message = format_release_message(repository, ReleaseInfo(tag_name="v1<2>"))
        assert "<script>" not in message
        assert "&lt;script&gt;&amp;co" in message
        assert "<b>v1&lt;2&gt;</b>" in message

    def test_release_url_encodes_tag(self):
        url = build_release_url(self.repository, ReleaseInfo(tag_name="pkg/v1.0 rc"))
        assert url == "https://github.com/octo/hello/releases/tag/pkg%2Fv1.0%20rc"

    def test_release_url_prefers_html_url(self):
        release = ReleaseInfo(
            tag_name="v2", html_url="https://github.com/octo/hello/releases/tag/v2"
        )
        assert build_release_url(self.repository, release) == release.html_url
