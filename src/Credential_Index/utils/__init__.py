"""Shared utilities for logging and tracing setup."""

from .logging import JsonFormatter, configure_logging, configure_tracing

__all__ = ["JsonFormatter", "configure_logging", "configure_tracing"]
