from __future__ import annotations

import logging

import pytest
import structlog

from Credential_Index.config.settings import get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    for name in ("CI_ENV", "CI_DEBUG", "CI_SEARCH__RETRY_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def restore_structlog():
    config = structlog.get_config()
    yield
    structlog.reset_defaults()
    structlog.configure(**config)
