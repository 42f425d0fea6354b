"""In-memory allow-list cache refreshed from a remote config endpoint.

The cache maps app ids to :class:`AllowList` generations. A refresh builds a
complete replacement map and swaps it in under the write lock, so readers see
either the old generation or the new one, never a mix of both.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from types import MappingProxyType
from typing import Iterator, Mapping

import httpx
from pydantic import BaseModel, ValidationError

from usage_metrics.core.errors import AppNotFoundError, UpstreamFetchError, truncate_body

from .models import AllowedMetricsResponse, AllowList, ManifestResponse

logger = logging.getLogger("usage_metrics.collector")

MANIFEST_PATH = "manifest.json"
APP_METRICS_PATH = "{app_id}/metrics.json"


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so a steady stream of lookups cannot
    starve a refresh.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: not self._writer and not self._writers_waiting)
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class AllowListCache:
    """Lock-guarded map from app id to its allowed metric names."""

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self._timeout = timeout
        self._lock = ReadWriteLock()
        self._apps: dict[str, AllowList] | None = None

    @property
    def loaded(self) -> bool:
        """Whether at least one refresh has completed."""

        with self._lock.read():
            return self._apps is not None

    def app_ids(self) -> list[str]:
        with self._lock.read():
            return sorted(self._apps or {})

    def get_allowed_metrics(self, app_id: str) -> AllowList:
        """Return the cached allow-list for ``app_id`` without any network I/O."""

        with self._lock.read():
            if self._apps is None or app_id not in self._apps:
                raise AppNotFoundError(app_id)
            return self._apps[app_id]

    def snapshot(self) -> Mapping[str, AllowList]:
        """Return the current generation. Generations are never mutated after the swap."""

        with self._lock.read():
            return MappingProxyType(self._apps or {})

    def replace(self, apps: Mapping[str, AllowList]) -> dict[str, AllowList] | None:
        """Swap in a complete generation and return the previous one."""

        generation = dict(apps)
        with self._lock.write():
            previous, self._apps = self._apps, generation
        return previous

    async def update(self, timeout: float | None = None) -> None:
        """Run one refresh cycle.

        A manifest failure raises :class:`UpstreamFetchError` and leaves the
        cache untouched. A failed per-app fetch keeps that app's previous
        allow-list when one exists.
        """

        if self.http_client is not None:
            await self._update(self.http_client, timeout)
            return
        async with httpx.AsyncClient() as client:
            await self._update(client, timeout)

    async def _update(self, client: httpx.AsyncClient, timeout: float | None) -> None:
        timeout = self._timeout if timeout is None else timeout
        manifest = await self._fetch(
            client, f"{self.base_url}/{MANIFEST_PATH}", ManifestResponse, timeout
        )
        app_ids = list(dict.fromkeys(manifest.metrics_apps))

        results = await asyncio.gather(
            *(self._fetch_app(client, app_id, timeout) for app_id in app_ids),
            return_exceptions=True,
        )

        # Fallbacks all come from one generation, read under a single lock.
        cached = self.snapshot()
        generation: dict[str, AllowList] = {}
        for app_id, result in zip(app_ids, results):
            if isinstance(result, AllowList):
                generation[app_id] = result
                continue
            if not isinstance(result, UpstreamFetchError):
                raise result
            logger.warning(
                "Error looking up metrics definitions for application in manifest. "
                "Will use cached definition if available. app_id=%s cause=%s",
                app_id,
                result,
            )
            if app_id in cached:
                generation[app_id] = cached[app_id]
            else:
                logger.warning(
                    "No cached definition available for application metrics definition. app_id=%s",
                    app_id,
                )

        previous = self.replace(generation)
        log_generation_diff(previous or {}, generation)

    async def _fetch_app(
        self, client: httpx.AsyncClient, app_id: str, timeout: float
    ) -> AllowList:
        url = f"{self.base_url}/{APP_METRICS_PATH.format(app_id=app_id)}"
        definition = await self._fetch(client, url, AllowedMetricsResponse, timeout)
        return AllowList(app_id=app_id, allowed=frozenset(definition.metrics))

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        model: type[BaseModel],
        timeout: float,
    ):
        try:
            response = await client.get(
                url, headers={"Accept": "application/json"}, timeout=timeout
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise UpstreamFetchError(url, f"request failed: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamFetchError(
                url,
                f"not a 200 response: {truncate_body(response.content)}",
                status_code=response.status_code,
            )
        try:
            return model.model_validate_json(response.content)
        except ValidationError as exc:
            raise UpstreamFetchError(url, f"failed to decode response body: {exc}") from exc


def log_generation_diff(
    previous: Mapping[str, AllowList], current: Mapping[str, AllowList]
) -> None:
    """Log added and removed apps between two generations in one record."""

    added = sorted(set(current) - set(previous))
    removed = sorted(set(previous) - set(current))
    if not added and not removed:
        return
    logger.info(
        "Metrics applications changed: added=%s removed=%s",
        added,
        removed,
        extra={"apps_added": added, "apps_removed": removed},
    )
