"""Configuration system for the credential index."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environments supported by the index."""

    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class TelemetrySettings(BaseModel):
    """Configuration block for OpenTelemetry export."""

    exporter: str = Field(default="console", description="Target exporter type")
    sample_ratio: float = Field(default=0.1, ge=0.0, le=1.0)


class LoggingSettings(BaseModel):
    """Structured logging configuration."""

    level: str = Field(default="INFO", description="Log level for application output")
    scrub_fields: Sequence[str] = Field(
        default_factory=lambda: ["password", "token", "secret"],
        description="Fields that should be redacted in logs",
    )


class MetricsSettings(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = True


class ObservabilitySettings(BaseModel):
    """Aggregate observability configuration."""

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)


class SearchSettings(BaseModel):
    """Runtime behaviour of the login list coordinator."""

    cancel_superseded: bool = Field(
        default=True,
        description="Cancel the in-flight store query when a newer search arrives",
    )
    query_timeout_seconds: float | None = Field(
        default=5.0,
        gt=0,
        description="Upper bound for a single store query; None disables the timeout",
    )
    retry_attempts: int = Field(
        default=1,
        ge=1,
        description="Store query attempts before the result is treated as empty",
    )
    retry_wait_base: float = Field(default=0.05, ge=0.0)
    retry_wait_max: float = Field(default=0.5, ge=0.0)
    section_in_executor: bool = Field(
        default=False,
        description="Partition results in the default executor instead of on the loop",
    )

    @model_validator(mode="after")
    def _check_backoff(self) -> SearchSettings:
        if self.retry_wait_max < self.retry_wait_base:
            raise ValueError("retry_wait_max must be >= retry_wait_base")
        return self


class AppSettings(BaseSettings):
    """Top-level application settings."""

    environment: Environment = Environment.DEV
    debug: bool = False
    service_name: str = "credential-index"
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    model_config = SettingsConfigDict(env_prefix="CI_", env_nested_delimiter="__")


ENVIRONMENT_DEFAULTS: Mapping[Environment, dict[str, Any]] = {
    Environment.DEV: {
        "debug": True,
        "observability": {"logging": {"level": "DEBUG"}},
    },
    Environment.STAGING: {
        "telemetry": {"sample_ratio": 0.25},
    },
    Environment.PROD: {
        "telemetry": {"sample_ratio": 0.05},
        "search": {"retry_attempts": 2},
    },
}


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            target[key] = _deep_update(dict(current), value)
        else:
            target[key] = value
    return target


def load_settings(environment: str | None = None) -> AppSettings:
    """Load application settings with environment specific defaults applied.

    Environment defaults only fill in what the process environment leaves
    unset; an explicit ``CI_*`` variable always wins.
    """
    env_value = (environment or os.getenv("CI_ENV", "dev")).lower()
    env = Environment(env_value)
    defaults = ENVIRONMENT_DEFAULTS.get(env, {})
    try:
        base_settings = AppSettings()
    except ValidationError as err:
        raise RuntimeError(f"Invalid configuration: {err}") from err
    explicit = base_settings.model_dump(exclude_unset=True)
    merged = _deep_update(_deep_update(base_settings.model_dump(), defaults), explicit)
    merged["environment"] = env
    return AppSettings.model_validate(merged)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Cached accessor used by production code."""
    return load_settings()
