"""Report ingestion route."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from usage_metrics.collector.allowlist import AllowListCache
from usage_metrics.collector.models import SendMetricRequest
from usage_metrics.core.errors import AppNotFoundError
from usage_metrics.core.logging import request_log_extra
from usage_metrics.core.metrics import ReportStats

from .decoding import decode_json_request

logger = logging.getLogger("usage_metrics.collector")
metric_logger = logging.getLogger("usage_metrics.metric")


def log_metric(report: SendMetricRequest, name: str, count: int) -> None:
    """Emit the record consumed by downstream log-based aggregation."""

    fields = {
        "app_id": report.app_id,
        "app_version": report.app_version,
        "install_id": report.install_id,
        "name": name,
        "count": count,
    }
    metric_logger.info(
        "metric received app_id=%s app_version=%s install_id=%s name=%s count=%d",
        report.app_id,
        report.app_version,
        report.install_id,
        name,
        count,
        extra={"metric": fields},
    )


def create_metrics_router(cache: AllowListCache, stats: ReportStats, max_body_bytes: int) -> APIRouter:
    router = APIRouter(tags=["metrics"])

    @router.post("/sendMetrics", status_code=status.HTTP_202_ACCEPTED)
    async def send_metrics(request: Request) -> dict[str, str]:
        """Accept a metric report and log each allow-listed metric."""

        report = await decode_json_request(request, SendMetricRequest, max_body_bytes)

        try:
            allowed = cache.get_allowed_metrics(report.app_id)
        except AppNotFoundError as exc:
            stats.record_unknown_app()
            logger.warning(
                "received metric request for unknown app", extra=request_log_extra(request)
            )
            raise HTTPException(status_code=404, detail=str(exc)) from exc

        accepted = rejected = 0
        for name, count in report.metrics.items():
            if allowed.metric_allowed(name):
                log_metric(report, name, count)
                accepted += 1
            else:
                # The metric name is attacker-controlled; only the app id is logged.
                logger.warning(
                    "received unknown metric for app app_id=%s",
                    report.app_id,
                    extra=request_log_extra(request),
                )
                rejected += 1

        stats.record_report(report.app_id, accepted, rejected)
        return {"message": "ok"}

    return router
