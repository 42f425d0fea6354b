"""Wire representation of a client metric report."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class MetricReport:
    """A single submission to ``POST /sendMetrics``."""

    app_id: str
    app_version: str
    install_id: str
    metrics: dict[str, int] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "appId": self.app_id,
            "appVersion": self.app_version,
            "metrics": dict(self.metrics),
            "installId": self.install_id,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_payload(), separators=(",", ":")).encode("utf-8")
