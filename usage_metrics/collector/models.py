"""Pydantic models for collector request bodies and upstream config documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

# Counts are signed 64-bit integers on the wire.
MetricCount = Annotated[StrictInt, Field(ge=-(2**63), le=2**63 - 1)]


class SendMetricRequest(BaseModel):
    """Body of ``POST /sendMetrics``.

    Older clients send ``installTime`` instead of ``installId``; either is
    accepted as the install identifier.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    app_id: StrictStr = Field(alias="appId")
    app_version: StrictStr = Field(default="", alias="appVersion")
    metrics: dict[StrictStr, MetricCount] = Field(default_factory=dict)
    install_id: StrictStr = Field(default="", alias="installId")
    install_time: StrictStr | None = Field(default=None, alias="installTime")

    @model_validator(mode="after")
    def _fallback_install_time(self) -> "SendMetricRequest":
        if not self.install_id and self.install_time:
            self.install_id = self.install_time
        return self


class ManifestResponse(BaseModel):
    """``manifest.json``: the applications whose allow-lists are tracked."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    metrics_apps: list[StrictStr] = Field(alias="metricsApps")


class AllowedMetricsResponse(BaseModel):
    """``<appId>/metrics.json``: metric names an application may report."""

    model_config = ConfigDict(extra="ignore")

    metrics: list[StrictStr]


@dataclass(slots=True, frozen=True)
class AllowList:
    """Allowed metric names for one application. Replaced, never mutated."""

    app_id: str
    allowed: frozenset[str] = field(default_factory=frozenset)

    def metric_allowed(self, name: str) -> bool:
        return name in self.allowed
