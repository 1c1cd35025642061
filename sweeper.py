from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Optional, Union

from cache import MemoryCache
from telemetry import Telemetry

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Periodically evicts expired entries from a MemoryCache on the event loop."""

    def __init__(
        self,
        cache: MemoryCache[Any],
        interval: Union[float, timedelta],
        telemetry: Optional[Telemetry] = None,
    ) -> None:
        if isinstance(interval, timedelta):
            interval = interval.total_seconds()
        if interval <= 0:
            raise ValueError("sweep interval must be positive")
        self._cache = cache
        self._interval = interval
        self._telemetry = telemetry
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        if self._telemetry is None:
            return self._cache.cleanup_expired()

        with self._telemetry.measure_sweep() as evicted:
            count = self._cache.cleanup_expired()
            evicted.append(count)
        self._telemetry.set_cache_size(len(self._cache))
        return count

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Cache sweeper started", extra={"interval_seconds": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Cache sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                evicted = self.sweep_once()
            except Exception:
                logger.exception("Cache sweep failed")
                continue
            if evicted:
                logger.debug("Evicted %d expired cache entries", evicted)
