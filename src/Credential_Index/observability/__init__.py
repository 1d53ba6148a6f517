"""Observability helpers for the credential index."""

from __future__ import annotations

from typing import TextIO

import structlog

from ..config.settings import AppSettings
from ..utils.logging import configure_logging, configure_tracing

__all__ = ["setup_observability"]

logger = structlog.get_logger(__name__)


def setup_observability(settings: AppSettings, *, stream: TextIO | None = None) -> None:
    """Configure logging and tracing from application settings.

    ``stream`` receives both log lines and console spans.
    """
    configure_logging(settings=settings.observability.logging, stream=stream)
    configure_tracing(settings.service_name, settings.telemetry, stream=stream)
    logger.info(
        "observability.configured",
        service=settings.service_name,
        environment=settings.environment.value,
        metrics_enabled=settings.observability.metrics.enabled,
    )
