"""Launch the collector with Uvicorn."""

from __future__ import annotations

import logging
import os

import uvicorn

logger = logging.getLogger("usage_metrics.launcher")


def main() -> None:
    port = int(os.environ.get("PORT", "8080"))
    host = os.environ.get("HOST", "0.0.0.0")
    logger.debug("Starting collector on %s:%s", host, port)
    uvicorn.run("usage_metrics.main:app", host=host, port=port)


if __name__ == "__main__":
    main()
