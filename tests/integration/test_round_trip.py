import asyncio
import logging

from fastapi.testclient import TestClient

from usage_metrics.client.writer import MetricWriter, new_metric_writer
from usage_metrics.core.config import ClientSettings


def test_writer_report_decodes_identically_on_the_collector(collector_app, cache, caplog):
    asyncio.run(cache.update())
    client = TestClient(collector_app)
    writer = MetricWriter("app1", "3.1.4", "install-xyz", "http://testserver", http_client=client)

    with caplog.at_level(logging.INFO):
        writer.write_metric("a", 42)

    records = [r for r in caplog.records if r.name == "usage_metrics.metric"]
    assert len(records) == 1
    assert records[0].metric == {
        "app_id": "app1",
        "app_version": "3.1.4",
        "install_id": "install-xyz",
        "name": "a",
        "count": 42,
    }
    assert writer.close()


def test_async_writes_are_flushed_by_close(collector_app, cache, caplog, tmp_path):
    asyncio.run(cache.update())
    client = TestClient(collector_app)
    writer = new_metric_writer(
        "app1",
        "1.0.0",
        settings=ClientSettings(metrics_url="http://testserver"),
        http_client=client,
        install_id_path=tmp_path / "id.json",
    )

    with caplog.at_level(logging.INFO):
        for count in range(5):
            writer.write_metric_async("b", count)
        assert writer.close(timeout=10)
        writer.write_metric_async("b", 99)

    counts = sorted(r.metric["count"] for r in caplog.records if r.name == "usage_metrics.metric")
    assert counts == [0, 1, 2, 3, 4]


def test_unknown_app_is_reported_to_the_callback(collector_app, tmp_path):
    client = TestClient(collector_app)
    errors = []
    writer = MetricWriter(
        "never-listed", "1.0.0", "id", "http://testserver", http_client=client, on_error=errors.append
    )

    writer.write_metric_async("a", 1)
    assert writer.close(timeout=10)

    assert len(errors) == 1
    assert errors[0].status_code == 404
