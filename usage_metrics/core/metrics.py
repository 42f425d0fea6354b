"""Lightweight in-memory counters describing collector traffic."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class ReportSnapshot:
    total_reports: int
    unknown_app_reports: int
    accepted_metrics: Dict[str, int]
    rejected_metrics: Dict[str, int]


class ReportStats:
    """Thread-safe counters for handled reports, keyed by app id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_reports = 0
        self._unknown_app_reports = 0
        self._accepted: Counter[str] = Counter()
        self._rejected: Counter[str] = Counter()

    def record_unknown_app(self) -> None:
        with self._lock:
            self._total_reports += 1
            self._unknown_app_reports += 1

    def record_report(self, app_id: str, accepted: int, rejected: int) -> None:
        with self._lock:
            self._total_reports += 1
            if accepted:
                self._accepted[app_id] += accepted
            if rejected:
                self._rejected[app_id] += rejected

    def snapshot(self) -> ReportSnapshot:
        with self._lock:
            return ReportSnapshot(
                total_reports=self._total_reports,
                unknown_app_reports=self._unknown_app_reports,
                accepted_metrics=dict(self._accepted),
                rejected_metrics=dict(self._rejected),
            )
