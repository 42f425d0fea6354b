"""Client-side metric writer.

``new_metric_writer`` returns either a :class:`MetricWriter`, which posts
reports to the collector, or a :class:`DisabledMetricWriter` when the
embedding application has been opted out.

Shutdown semantics of :meth:`MetricWriter.close`:

* every write admitted before ``close`` started is awaited;
* writes attempted once ``close`` has started are silently dropped;
* admission never blocks, so ``close`` cannot starve behind new writes and
  cannot deadlock on writes that are waiting for it.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

import httpx

from usage_metrics import __version__
from usage_metrics.core.config import ClientSettings, load_client_settings
from usage_metrics.core.errors import (
    MetricsTransportError,
    ResponseStatusError,
    truncate_body,
)

from .identity import load_or_create_install_id
from .models import MetricReport

logger = logging.getLogger("usage_metrics.client")

DEFAULT_TIMEOUT_SECONDS = 5.0
USER_AGENT = f"usage-metrics-client/{__version__}"

ErrorCallback = Callable[[Exception], None]


class Writer(ABC):
    """Interface shared by enabled and disabled writers."""

    @abstractmethod
    def write_metric(self, name: str, count: int, *, timeout: float | None = None) -> None:
        """Send a single metric, blocking until the collector answers."""

    @abstractmethod
    def write_metric_async(self, name: str, count: int, *, timeout: float | None = None) -> None:
        """Send a single metric on a background thread and return immediately."""

    @abstractmethod
    def close(self, timeout: float | None = None) -> bool:
        """Wait for admitted writes and stop accepting new ones."""

    @property
    def enabled(self) -> bool:
        return False

    def __enter__(self) -> "Writer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class DisabledMetricWriter(Writer):
    """Writer for opted-out installations; every operation is a no-op."""

    def write_metric(self, name: str, count: int, *, timeout: float | None = None) -> None:
        return None

    def write_metric_async(self, name: str, count: int, *, timeout: float | None = None) -> None:
        return None

    def close(self, timeout: float | None = None) -> bool:
        return True


class _Admission:
    """Non-blocking admission gate paired with an in-flight counter."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._in_flight = 0
        self._closing = False

    def try_enter(self) -> bool:
        with self._cond:
            if self._closing:
                return False
            self._in_flight += 1
            return True

    def leave(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    def close_and_drain(self, timeout: float | None = None, *, held: int = 0) -> bool:
        """Refuse further entries and wait until only ``held`` entries remain.

        ``held`` is the number of entries owned by the calling thread, which
        cannot finish while it waits here.
        """

        with self._cond:
            self._closing = True
            return self._cond.wait_for(lambda: self._in_flight <= held, timeout=timeout)

    @property
    def closing(self) -> bool:
        with self._cond:
            return self._closing

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight


class MetricWriter(Writer):
    """Posts metric reports for one application installation."""

    def __init__(
        self,
        app_id: str,
        app_version: str,
        install_id: str,
        server_url: str,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        on_error: ErrorCallback | None = None,
    ) -> None:
        if not app_id:
            raise ValueError("app_id cannot be empty")
        self.app_id = app_id
        self.app_version = app_version
        self.install_id = install_id
        self.server_url = server_url.rstrip("/")
        self._timeout = timeout
        self._on_error = on_error
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.Client(timeout=timeout)
        self._gate = _Admission()
        self._opted_out = False
        self._local = threading.local()

    @property
    def enabled(self) -> bool:
        return not self._opted_out and not self._gate.closing

    @property
    def send_url(self) -> str:
        return f"{self.server_url}/sendMetrics"

    def build_report(self, name: str, count: int) -> MetricReport:
        return MetricReport(
            app_id=self.app_id,
            app_version=self.app_version,
            metrics={name: count},
            install_id=self.install_id,
        )

    def write_metric(self, name: str, count: int, *, timeout: float | None = None) -> None:
        if self._opted_out or not self._gate.try_enter():
            return
        try:
            self._send(name, count, timeout)
        finally:
            self._gate.leave()

    def write_metric_async(self, name: str, count: int, *, timeout: float | None = None) -> None:
        if self._opted_out or not self._gate.try_enter():
            return
        thread = threading.Thread(
            target=self._run_async,
            args=(name, count, timeout),
            name=f"metric-writer-{self.app_id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as exc:
            self._gate.leave()
            self._report_async_error(exc)

    def _run_async(self, name: str, count: int, timeout: float | None) -> None:
        self._local.admitted = True
        try:
            self._send(name, count, timeout)
        except Exception as exc:  # noqa: BLE001
            self._report_async_error(exc)
        finally:
            self._local.admitted = False
            self._gate.leave()

    def _report_async_error(self, exc: Exception) -> None:
        if self._on_error is None:
            logger.debug("failed to send metrics: %s", exc)
            return
        try:
            self._on_error(exc)
        except Exception:  # noqa: BLE001
            logger.exception("metrics error callback raised")

    def _effective_timeout(self, timeout: float | None) -> float:
        if timeout is None:
            return self._timeout
        return max(0.0, min(timeout, self._timeout))

    def _send(self, name: str, count: int, timeout: float | None) -> None:
        report = self.build_report(name, count)
        try:
            response = self._client.post(
                self.send_url,
                content=report.to_json(),
                headers={
                    "User-Agent": USER_AGENT,
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=self._effective_timeout(timeout),
            )
        except httpx.HTTPError as exc:
            raise MetricsTransportError(f"failed to make http request: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise ResponseStatusError(response.status_code, truncate_body(response.content))

    def close(self, timeout: float | None = None) -> bool:
        """Drain admitted writes, then opt the writer out permanently.

        Returns ``False`` if ``timeout`` elapsed before every admitted write
        finished; the writer still refuses new writes in that case.
        """

        # close() may be called from an error callback running inside an
        # admitted write; that write must not be waited on.
        held = 1 if getattr(self._local, "admitted", False) else 0
        drained = self._gate.close_and_drain(timeout, held=held)
        self._opted_out = True
        if drained and self._owns_client:
            self._client.close()
        if not drained:
            logger.debug(
                "metric writer closed with %d writes still in flight", self._gate.in_flight
            )
        return drained


def new_metric_writer(
    app_id: str,
    app_version: str,
    *,
    settings: ClientSettings | None = None,
    http_client: httpx.Client | None = None,
    install_id_path: Path | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    on_error: ErrorCallback | None = None,
) -> Writer:
    """Build a writer for ``app_id`` from environment configuration.

    Returns a :class:`DisabledMetricWriter` when ``<APPID>_NO_METRICS`` is set,
    without touching the install identifier or the network.
    """

    if not app_id:
        raise ValueError("app_id cannot be empty")

    settings = settings or load_client_settings(app_id)
    if settings.no_metrics:
        return DisabledMetricWriter()

    install_id = load_or_create_install_id(app_id, install_id_path)
    return MetricWriter(
        app_id,
        app_version,
        install_id,
        settings.server_url,
        http_client=http_client,
        timeout=timeout,
        on_error=on_error,
    )
