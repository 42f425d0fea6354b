"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AnyHttpUrl, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

DEFAULT_METRICS_URL = "http://127.0.0.1:8080"


class CollectorSettings(BaseSettings):
    """Strongly-typed collector configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="Usage Metrics Collector", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    metrics_config_url: AnyHttpUrl = Field(
        default="http://127.0.0.1:9000/metrics-config",
        description="Base URL serving manifest.json and <appId>/metrics.json.",
    )
    refresh_enabled: bool = Field(
        default=True,
        description="Start the background allow-list refresher with the app.",
    )
    refresh_interval_seconds: float = Field(
        default=60.0,
        ge=1.0,
        description="Seconds between allow-list refresh cycles.",
    )
    fetch_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout applied to each upstream config request.",
    )
    max_body_bytes: int = Field(
        default=2 << 20,
        ge=1,
        description="Maximum accepted /sendMetrics body size.",
    )

    @property
    def config_base_url(self) -> str:
        """Return the config endpoint base URL without a trailing slash."""

        return str(self.metrics_config_url).rstrip("/")


class ClientSettings(BaseSettings):
    """Per-application client configuration.

    Variables are prefixed with the upper-cased app id, so an app called
    ``mytool`` is configured through ``MYTOOL_METRICS_URL`` and
    ``MYTOOL_NO_METRICS``.
    """

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    metrics_url: AnyHttpUrl = Field(
        default=DEFAULT_METRICS_URL,
        description="Collector base URL; reports are posted to <url>/sendMetrics.",
    )
    no_metrics: bool = Field(default=False, description="Opt out of sending any metrics.")

    @property
    def server_url(self) -> str:
        return str(self.metrics_url).rstrip("/")


def env_prefix(app_id: str) -> str:
    return app_id.upper() + "_"


def load_client_settings(app_id: str) -> ClientSettings:
    """Load client settings for ``app_id`` from the environment."""

    try:
        return ClientSettings(_env_prefix=env_prefix(app_id))
    except ValidationError as exc:
        raise ConfigurationError(f"failed to process metrics configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> CollectorSettings:
    """Return cached collector settings instance."""

    return CollectorSettings()
