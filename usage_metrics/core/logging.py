"""Logging utilities for the collector.

Every request gets an id (taken from ``X-Request-ID`` or generated). It is
stored on ``request.state``, echoed in the response, and attached to log
records emitted while the request is handled so report warnings can be
correlated with the request that caused them.
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request

logger = logging.getLogger("usage_metrics.request")

REQUEST_ID_HEADER = "X-Request-ID"
LOG_FORMAT = "%(levelname)s %(name)s [rid=%(request_id)s] %(message)s"

current_request_id: ContextVar[str | None] = ContextVar("current_request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Fill ``record.request_id`` from the active request, or ``-`` outside one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = current_request_id.get() or "-"
        return True


def configure_logging(level_name: str) -> int:
    """Configure root logging once and quiet noisy HTTP client loggers."""

    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return level


def request_id_of(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def request_log_extra(request: Request) -> dict[str, str | None]:
    """``extra`` mapping that tags a record with the request's id."""

    return {"request_id": request_id_of(request)}


async def request_id_middleware(request: Request, call_next: Callable):
    request_id = request.headers.get(REQUEST_ID_HEADER.lower()) or uuid.uuid4().hex
    request.state.request_id = request_id
    token = current_request_id.set(request_id)
    try:
        logger.info("%s %s", request.method, request.url.path, extra={"request_id": request_id})
        response = await call_next(request)
    finally:
        current_request_id.reset(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
