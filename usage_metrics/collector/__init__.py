"""Collector-side allow-list cache and refresh loop."""

from .allowlist import AllowListCache, ReadWriteLock
from .models import AllowList, SendMetricRequest
from .refresh import AllowListRefresher

__all__ = [
    "AllowList",
    "AllowListCache",
    "AllowListRefresher",
    "ReadWriteLock",
    "SendMetricRequest",
]
