"""
GitHub Release Bot

Polls tracked GitHub repositories for new releases and notifies subscribed
Telegram chats.
"""

__version__ = "0.1.0"
__author__ = "GitHub Release Bot"
__email__ = "support@example.com"

from .config import Settings
from .exceptions import ReleaseBotError
from .github_client import GitHubReleaseClient
from .polling import PollCycle, PollScheduler
from .telegram_notifier import TelegramNotifier
from .tracking import TrackingService

__all__ = [
    "Settings",
    "GitHubReleaseClient",
    "TelegramNotifier",
    "PollCycle",
    "PollScheduler",
    "TrackingService",
    "ReleaseBotError",
]
