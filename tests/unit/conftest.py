"""Pytest unit test fixtures."""

import threading

import httpx
import pytest

from usage_metrics.client.writer import MetricWriter


class RecordingCollector:
    """Fake collector endpoint for writer tests."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 202
        self.body = b'{"message":"ok"}'
        self.release = threading.Event()
        self.release.set()
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        self.release.wait(timeout=5)
        return httpx.Response(self.status_code, content=self.body)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self.requests)


@pytest.fixture()
def install_id_path(tmp_path):
    return tmp_path / "config" / "id.json"


@pytest.fixture()
def collector():
    return RecordingCollector()


@pytest.fixture()
def writer(collector):
    client = httpx.Client(transport=httpx.MockTransport(collector.handler))
    metric_writer = MetricWriter(
        "app1",
        "1.0.0",
        "install-1",
        "http://collector.test",
        http_client=client,
    )
    yield metric_writer
    collector.release.set()
    metric_writer.close(timeout=5)
    client.close()
