"""
Telegram Bot API notifier for the GitHub release bot.

Formats release announcements as HTML and delivers them with ``sendMessage``.
"""

import asyncio
import html
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .exceptions import ChatUnreachableError, DeliveryError
from .models import ReleaseInfo, TrackedRepository

logger = structlog.get_logger(__name__)


def build_release_url(repository: TrackedRepository, release: ReleaseInfo) -> str:
    """Link to the release page, derived from the tag when GitHub gave none."""
    if release.html_url:
        return release.html_url
    return f"{repository.repository_url}/releases/tag/{quote(release.tag_name, safe='')}"


def format_release_message(repository: TrackedRepository, release: ReleaseInfo) -> str:
    """Build the HTML announcement for a new release."""
    url_escaped = html.escape(str(repository.repository_url))
    name_escaped = html.escape(repository.repository_name)
    tag_escaped = html.escape(release.tag_name)
    release_url_escaped = html.escape(build_release_url(repository, release))
    return (
        f'New release for <a href="{url_escaped}">{name_escaped}</a>: '
        f'<a href="{release_url_escaped}"><b>{tag_escaped}</b></a>'
    )


class TelegramNotifier:
    """Notifier that sends messages via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        max_retries: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._api_url = api_url.rstrip("/")
        self._max_retries = max_retries
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(cls, config: Any) -> "TelegramNotifier":
        """Create a notifier from a TelegramConfig."""
        return cls(
            bot_token=config.bot_token,
            api_url=config.api_url,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        )

    def _endpoint(self) -> str:
        return f"{self._api_url}/bot{self._bot_token}/sendMessage"

    async def send(self, chat_id: int, text: str) -> None:
        """
        Send an HTML message to a chat.

        Args:
            chat_id: Telegram chat ID
            text: HTML formatted message

        Raises:
            ChatUnreachableError: The chat is gone or has blocked the bot
            DeliveryError: Any other delivery failure
        """
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        attempt = 0
        while True:
            try:
                response = await self._client.post(self._endpoint(), json=payload)
            except httpx.HTTPError as e:
                raise DeliveryError(
                    f"Failed to reach Telegram: {e}", chat_id=chat_id
                ) from e

            body = self._parse_body(response)
            if response.status_code == 200 and body.get("ok", False):
                logger.debug("Message delivered", chat_id=chat_id)
                return

            description = body.get("description") or response.text
            retry_after = body.get("parameters", {}).get("retry_after")
            if (
                response.status_code == 429
                and retry_after is not None
                and attempt < self._max_retries
            ):
                attempt += 1
                logger.warning(
                    "Telegram rate limit hit, retrying",
                    chat_id=chat_id,
                    retry_after=retry_after,
                    attempt=attempt,
                )
                await asyncio.sleep(float(retry_after))
                continue

            if response.status_code == 403 or "chat not found" in description.lower():
                raise ChatUnreachableError(
                    f"Chat {chat_id} is unreachable: {description}",
                    chat_id=chat_id,
                    status_code=response.status_code,
                )
            raise DeliveryError(
                f"Bot API error {response.status_code}: {description}",
                chat_id=chat_id,
                status_code=response.status_code,
            )

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this notifier created it."""
        if self._owns_client:
            await self._client.aclose()
