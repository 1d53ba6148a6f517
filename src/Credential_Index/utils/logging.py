"""Logging configuration helpers with OpenTelemetry and Structlog integration.

Key Responsibilities:
    - Route Structlog events through standard library logging
    - Render every record as one JSON line with sensitive fields scrubbed
    - Install an OpenTelemetry tracer provider for store query spans

Collaborators:
    - Upstream: The CLI and embedding applications call these helpers at startup
    - Downstream: Relies on ``logging``, ``structlog``, and the OpenTelemetry SDK

Side Effects:
    - Configures global logging handlers and the global tracer provider

Thread Safety:
    - Configuration should be invoked once during process startup
"""

# ==============================================================================
# IMPORTS
# ==============================================================================

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterable
from typing import Any, TextIO

import structlog
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from Credential_Index.config.settings import LoggingSettings, TelemetrySettings

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

_SCRUBBED = "***"

# ==============================================================================
# FORMATTER
# ==============================================================================


class JsonFormatter(logging.Formatter):
    """Formats log records as single line JSON objects.

    Structlog key/value pairs arrive as ``extra`` attributes on the record and
    become top-level keys. Keys named in ``scrub_fields`` (case-insensitive,
    at any nesting depth) are replaced with ``***``.
    """

    def __init__(self, *, scrub_fields: Iterable[str] | None = None) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")
        self._scrub_fields = frozenset(field.lower() for field in scrub_fields or ())

    def _clean(self, key: str, value: Any) -> Any:
        if key.lower() in self._scrub_fields:
            return _SCRUBBED
        if isinstance(value, dict):
            return {k: self._clean(str(k), v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._clean("", item) for item in value]
        return value

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            key: self._clean(key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
        }
        payload.update(
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            time=self.formatTime(record, self.datefmt),
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


# ==============================================================================
# CONFIGURATION
# ==============================================================================


def _level_value(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    settings: LoggingSettings | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure global logging for the application.

    Args:
        level: Optional logging level or level name. Ignored when ``settings``
            is provided.
        settings: Optional logging settings providing level and scrub fields.
        stream: Stream receiving the JSON lines; defaults to ``sys.stdout``.
            Command line tools pass ``sys.stderr`` to keep stdout for results.

    Note:
        Handlers installed by pytest are kept so ``caplog`` still sees records.
    """
    scrub_fields: Iterable[str] | None = None
    if settings is not None:
        level = settings.level
        scrub_fields = settings.scrub_fields
    formatter = JsonFormatter(scrub_fields=scrub_fields)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(formatter)

    preserved: list[logging.Handler] = []
    for existing in logging.getLogger().handlers:
        if type(existing).__module__.startswith("_pytest."):
            existing.setFormatter(formatter)
            preserved.append(existing)

    logging.basicConfig(level=_level_value(level), handlers=[*preserved, handler], force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ==============================================================================
# TRACING
# ==============================================================================


def configure_tracing(
    service_name: str,
    telemetry: TelemetrySettings,
    *,
    stream: TextIO | None = None,
) -> None:
    """Configure the OpenTelemetry tracing provider.

    Only the console exporter ships with the index; it writes to ``stream``
    (``sys.stdout`` by default). ``exporter="none"`` installs a sampled
    provider without an exporter.
    """
    resource = Resource(attributes={"service.name": service_name})
    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(telemetry.sample_ratio))
    if telemetry.exporter.lower() != "none":
        exporter = ConsoleSpanExporter(out=stream if stream is not None else sys.stdout)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)


__all__ = ["JsonFormatter", "configure_logging", "configure_tracing"]
