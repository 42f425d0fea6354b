"""Background task that keeps an :class:`AllowListCache` current."""

from __future__ import annotations

import asyncio
import logging

from usage_metrics.core.errors import UpstreamFetchError

from .allowlist import AllowListCache

logger = logging.getLogger("usage_metrics.collector")


class AllowListRefresher:
    """Runs ``cache.update`` every ``interval`` seconds until stopped.

    Fetch failures are logged and retried on the next tick; the cache keeps
    serving its last generation in the meantime.
    """

    def __init__(self, cache: AllowListCache, interval: float, *, timeout: float | None = None) -> None:
        self.cache = cache
        self.interval = interval
        self.timeout = timeout
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_once(self) -> bool:
        """Run a single refresh, returning whether it succeeded."""

        try:
            await self.cache.update(timeout=self.timeout)
        except UpstreamFetchError as exc:
            logger.warning("Failed to refresh metrics allow-lists: %s", exc)
            return False
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error refreshing metrics allow-lists")
            return False
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.refresh_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="allow-list-refresher")
        logger.info("Allow-list refresher started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Allow-list refresher stopped")
