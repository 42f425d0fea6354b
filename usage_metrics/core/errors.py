"""Exception types and FastAPI exception handling utilities."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from .logging import REQUEST_ID_HEADER, request_id_of, request_log_extra

logger = logging.getLogger("usage_metrics.errors")

# Upper bound on response bytes copied into error messages.
MAX_ERROR_RESPONSE_BYTES = 2048


class UsageMetricsError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(UsageMetricsError):
    """Configuration could not be loaded or failed validation."""


class DecodeError(UsageMetricsError):
    """A request body could not be decoded; carries the HTTP status to return."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class AppNotFoundError(UsageMetricsError):
    """No allow-list is cached for the requested application."""

    def __init__(self, app_id: str) -> None:
        super().__init__(f"no metric definition found for app {app_id}")
        self.app_id = app_id


class UpstreamFetchError(UsageMetricsError):
    """Fetching the manifest or an app's allow-list from the config endpoint failed."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class MetricsTransportError(UsageMetricsError):
    """The HTTP request to the collector could not be completed."""


class ResponseStatusError(UsageMetricsError):
    """The collector answered outside the 2xx range."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"received {status_code} response: {body}")
        self.status_code = status_code
        self.body = body


def truncate_body(content: bytes, limit: int = MAX_ERROR_RESPONSE_BYTES) -> str:
    """Decode at most ``limit`` bytes of a response body for error reporting."""

    return content[:limit].decode("utf-8", errors="replace")


def _error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    request_id = request_id_of(request)
    content = {"error": error, "message": message}
    headers = None
    if request_id is not None:
        content["request_id"] = request_id
        headers = {REQUEST_ID_HEADER: request_id}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def decode_error_handler(request: Request, exc: DecodeError) -> JSONResponse:
    logger.warning(
        "Rejected report body (%d): %s",
        exc.status_code,
        exc.message,
        extra=request_log_extra(request),
    )
    return _error_response(request, exc.status_code, "invalid_request", exc.message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Log the failure with its request id and return a generic 500 body."""

    logger.exception(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        extra=request_log_extra(request),
    )
    return _error_response(
        request,
        500,
        "internal_error",
        "The report could not be processed. Please try again later.",
    )
