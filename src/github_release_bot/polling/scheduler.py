"""
Poll scheduler for the GitHub release bot.

Drives PollCycle.run_poll_cycle on a fixed interval. A trigger that fires
while a cycle is still running is skipped rather than queued.
"""

import asyncio

import structlog

from ..exceptions import ReleaseBotError
from .cycle import PollCycle
from .metrics import PollCycleReport

logger = structlog.get_logger(__name__)


class PollScheduler:
    """Runs poll cycles periodically and on demand."""

    def __init__(self, cycle: PollCycle, interval_seconds: float):
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self.is_running_flag = False
        self.polling_task: asyncio.Task[None] | None = None
        self.skipped_triggers = 0
        self._cycle_lock = asyncio.Lock()

    def is_running(self) -> bool:
        """Check if the polling loop is active."""
        return self.is_running_flag

    def is_cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    async def trigger(self) -> PollCycleReport | None:
        """
        Run one poll cycle unless one is already in progress.

        Returns:
            The cycle report, or None if the trigger was skipped
        """
        if self._cycle_lock.locked():
            self.skipped_triggers += 1
            logger.warning(
                "Poll cycle still running, skipping trigger",
                skipped_triggers=self.skipped_triggers,
            )
            return None

        async with self._cycle_lock:
            return await self.cycle.run_poll_cycle()

    def start(self) -> asyncio.Task[None]:
        """Start the polling loop as a background task."""
        if self.polling_task and not self.polling_task.done():
            logger.warning("Polling already running")
            return self.polling_task

        self.polling_task = asyncio.create_task(self.run_forever())
        return self.polling_task

    async def run_forever(self) -> None:
        """Main polling loop."""
        self.is_running_flag = True
        logger.info("Starting release poller", interval_seconds=self.interval_seconds)

        try:
            while self.is_running_flag:
                try:
                    await self.trigger()
                except ReleaseBotError as e:
                    logger.error("Polling cycle aborted", error=str(e), error_code=e.code)
                except Exception as e:
                    logger.error("Error in polling cycle", error=str(e))

                await asyncio.sleep(self.interval_seconds)
        except asyncio.CancelledError:
            logger.info("Polling cancelled")
        finally:
            self.is_running_flag = False

    async def stop(self) -> None:
        """Stop the polling loop."""
        self.is_running_flag = False

        if self.polling_task and not self.polling_task.done():
            logger.info("Stopping release poller")
            self.polling_task.cancel()
            try:
                await self.polling_task
            except asyncio.CancelledError:
                pass
        self.polling_task = None
