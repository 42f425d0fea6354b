"""Strict JSON request body decoding with reason-specific client errors."""

from __future__ import annotations

import json
from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from usage_metrics.core.errors import DecodeError

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_CONTENT_TYPE = "application/json"

_decoder = json.JSONDecoder()


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, raising a 413 as soon as it exceeds ``max_bytes``."""

    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise DecodeError(413, "request body too large")

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise DecodeError(413, "request body too large")
        chunks.append(chunk)
    return b"".join(chunks)


def parse_single_json_value(body: bytes) -> object:
    """Decode exactly one JSON value; surrounding whitespace is allowed."""

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(400, f"malformed json at position {exc.start}") from exc

    start = len(text) - len(text.lstrip())
    if start == len(text):
        raise DecodeError(400, "body must not be empty")

    try:
        value, end = _decoder.raw_decode(text, start)
    except json.JSONDecodeError as exc:
        if exc.pos >= len(text):
            raise DecodeError(400, "malformed json") from exc
        raise DecodeError(400, f"malformed json at position {exc.pos}") from exc
    except RecursionError as exc:
        raise DecodeError(400, "json nested too deeply") from exc
    except ValueError as exc:
        # Integer literals beyond the interpreter's digit limit.
        raise DecodeError(400, f"invalid value in json body ({exc})") from exc

    if text[end:].strip():
        raise DecodeError(400, "body contained more than one json object")
    return value


def validation_message(exc: ValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or "body"
    return f'invalid value for "{field}" ({error.get("msg", "invalid value")})'


async def decode_json_request(request: Request, model: type[ModelT], max_bytes: int) -> ModelT:
    """Decode the request body into ``model``.

    Raises :class:`DecodeError` with status 415 (content type), 413 (size) or
    400 (empty, malformed, trailing data, wrong field type).
    """

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(JSON_CONTENT_TYPE):
        raise DecodeError(
            415,
            f"invalid content type: content-type {content_type!r} is not {JSON_CONTENT_TYPE!r}",
        )

    body = await read_limited_body(request, max_bytes)
    if not body:
        raise DecodeError(400, "body must not be empty")

    value = parse_single_json_value(body)
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise DecodeError(400, validation_message(exc)) from exc
