"""
Base class for periodic polling.

Handles the scheduling and lifecycle of a background asyncio task that calls
poll() on a fixed interval.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)


class PeriodicPoller(ABC):
    """
    Runs poll() every interval_seconds until stopped.

    A failing poll is logged and the loop continues with the next interval.
    """

    def __init__(self, name: str, interval_seconds: float = 30):
        """
        Initialize periodic poller.

        Args:
            name: Poller name for logging
            interval_seconds: Seconds between the start of consecutive polls
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._poll_count = 0
        self._error_count = 0
        self._last_error: Optional[str] = None

    @abstractmethod
    async def poll(self) -> Any:
        """
        Run one polling cycle.

        Must be implemented by subclasses.
        """
        pass

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning(f"{self.name} already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Started {self.name} polling every {self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop the polling loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"Stopped {self.name} polling")

    def set_interval(self, interval_seconds: float) -> None:
        """Change the interval; takes effect immediately."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._wakeup.set()

    async def _poll_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            self._wakeup.clear()
            try:
                self._poll_count += 1
                await self.poll()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._error_count += 1
                self._last_error = str(e)
                logger.error(f"{self.name} poll failed: {e}", exc_info=True)

            # Wait for next interval, or wake early when the interval changes
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    @property
    def is_running(self) -> bool:
        """Check if poller is running."""
        return self._running

    def get_stats(self) -> dict:
        """
        Get poller statistics.

        Returns:
            Dictionary with poll stats
        """
        return {
            "name": self.name,
            "polls": self._poll_count,
            "errors": self._error_count,
            "error_rate": self._error_count / max(1, self._poll_count),
            "last_error": self._last_error,
            "interval_seconds": self.interval_seconds,
        }
