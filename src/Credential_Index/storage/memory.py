"""In-memory credential store used by tests and the CLI."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from Credential_Index.models import LoginRecord

from .base import LoginStore, StorageError

logger = structlog.get_logger(__name__)


class InMemoryLoginStore(LoginStore):
    """Asyncio store keeping records in insertion order.

    ``latency`` simulates a slow backend; ``failure`` makes every search raise
    so callers can exercise their error paths.
    """

    def __init__(
        self,
        records: Iterable[LoginRecord] = (),
        *,
        latency: float = 0.0,
        failure: Exception | None = None,
    ) -> None:
        self._records: dict[str, LoginRecord] = {}
        self.latency = latency
        self.failure = failure
        self.queries: list[str] = []
        self.add_logins(records)

    def __len__(self) -> int:
        return len(self._records)

    def add_logins(self, records: Iterable[LoginRecord]) -> None:
        for record in records:
            self._records[record.id] = record

    def remove_login(self, login_id: str) -> None:
        try:
            del self._records[login_id]
        except KeyError as exc:
            raise StorageError(f"unknown login {login_id!r}") from exc

    async def search_logins(self, query: str) -> list[LoginRecord]:
        self.queries.append(query)
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.failure is not None:
            raise self.failure
        matches = [record for record in self._records.values() if record.matches(query)]
        logger.debug("storage.memory.search", matches=len(matches))
        return matches
