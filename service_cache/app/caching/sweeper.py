"""
Periodic sweep of expired cache entries.
"""

import asyncio
from typing import Optional, TYPE_CHECKING

from shared.logging import get_logger
from .errors import StoreUnavailable
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheSweeper:
    """Background task bounding memory held by expired entries.

    Expiry is enforced at read time regardless; the sweep only reclaims
    entries nobody asks for again.
    """

    def __init__(
        self,
        store: CacheStore,
        interval_seconds: float = 30.0,
        *,
        metrics: Optional["MetricsCollector"] = None,
        cache_type: str = "response",
    ):
        self.store = store
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.cache_type = cache_type
        self.logger = get_logger("cache.sweeper")
        self._task: Optional[asyncio.Task] = None
        self.running = False
        self.sweeps = 0
        self.removed_total = 0

    async def start(self):
        """Start the sweep loop."""
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._sweep_loop())
        self.logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the sweep loop."""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.logger.info("Cache sweeper stopped", sweeps=self.sweeps, removed_total=self.removed_total)

    async def sweep_once(self) -> int:
        """Run one sweep and refresh the entry gauge."""
        removed = await self.store.sweep()
        self.sweeps += 1
        self.removed_total += removed
        if removed:
            self.logger.debug("Swept expired cache entries", removed=removed)
        if self.metrics:
            self.metrics.set_gauge("cache_entries", await self.store.size(), cache_type=self.cache_type)
        return removed

    async def _sweep_loop(self):
        while self.running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except StoreUnavailable as exc:
                self.logger.error("Cache sweep failed", error=exc.message)
            except Exception as exc:
                self.logger.error("Error in cache sweep loop", error=str(exc), exc_info=True)
