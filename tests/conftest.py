from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from usage_metrics.collector.allowlist import AllowListCache
from usage_metrics.core.config import CollectorSettings
from usage_metrics.main import create_app

CONFIG_URL = "http://config.test/metrics"


class FakeConfigServer:
    """Serves manifest.json and per-app metrics.json through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, bytes]] = {}
        self.requests: list[str] = []

    def set_json(self, path: str, payload: object, status: int = 200) -> None:
        self.routes[path] = (status, json.dumps(payload).encode("utf-8"))

    def set_raw(self, path: str, body: bytes, status: int = 200) -> None:
        self.routes[path] = (status, body)

    def set_manifest(self, app_ids: list[str]) -> None:
        self.set_json("manifest.json", {"metricsApps": app_ids})

    def set_app(self, app_id: str, metrics: list[str]) -> None:
        self.set_json(f"{app_id}/metrics.json", {"metrics": metrics})

    def fail(self, path: str, status: int = 500, body: bytes = b"upstream broke") -> None:
        self.routes[path] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/metrics/")
        self.requests.append(path)
        status, body = self.routes.get(path, (404, b"not found"))
        return httpx.Response(status, content=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def report_app1(fixtures_dir: Path) -> dict:
    return json.loads((fixtures_dir / "report_app1.json").read_text(encoding="utf-8"))


@pytest.fixture
def config_server(fixtures_dir: Path) -> FakeConfigServer:
    server = FakeConfigServer()
    server.set_raw("manifest.json", (fixtures_dir / "manifest.json").read_bytes())
    server.set_raw("app1/metrics.json", (fixtures_dir / "app1_metrics.json").read_bytes())
    return server


@pytest.fixture
def cache(config_server: FakeConfigServer) -> AllowListCache:
    return AllowListCache(CONFIG_URL, config_server.client(), timeout=1.0)


@pytest.fixture
def collector_settings() -> CollectorSettings:
    return CollectorSettings(
        metrics_config_url=CONFIG_URL,
        refresh_enabled=False,
        environment="test",
    )


@pytest.fixture
def collector_app(collector_settings: CollectorSettings, cache: AllowListCache):
    return create_app(settings=collector_settings, cache=cache)
