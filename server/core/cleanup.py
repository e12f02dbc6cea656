"""Periodic sweep of expired cache entries.

Follows the start/stop background-task pattern used across the services:
one owned asyncio task per sweeper, cancelled and awaited on shutdown.
"""
import asyncio
from typing import Optional, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.cache import TTLCache

logger = get_logger(__name__)


class CacheSweeper:
    """Background task that evicts expired entries from one TTLCache."""

    def __init__(self, cache: "TTLCache", interval: float):
        self.cache = cache
        self.interval = interval
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop. Calling it twice is a no-op."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Cache sweeper started", cache=self.cache.name, interval=self.interval)

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to exit."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cache sweeper stopped", cache=self.cache.name)

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                self.run_once()
            except Exception as e:
                logger.error("Cache sweep failed", cache=self.cache.name, error=str(e))

    def run_once(self) -> int:
        """Run a single sweep and return the number of evicted entries."""
        evicted = self.cache.cleanup()
        if evicted:
            logger.info("Cache sweep completed", cache=self.cache.name,
                        evicted=evicted, remaining=len(self.cache))
        return evicted
