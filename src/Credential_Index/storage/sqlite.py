"""SQLite credential store answering searches from a worker thread.

Key Responsibilities:
    - Persist login records in a single SQLite table
    - Run every statement on one dedicated worker thread
    - Hand back ``concurrent.futures.Future`` objects completed on that thread

Collaborators:
    - Upstream: ``LoginListCoordinator`` awaits the futures on its event loop
    - Downstream: Standard library ``sqlite3``

Thread Safety:
    - The connection is created and used only on the worker thread; public
      methods may be called from any thread
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

import structlog
from pydantic import SecretStr

from Credential_Index.models import LoginRecord

from .base import LoginStore, StorageError

logger = structlog.get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS logins (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    hostname TEXT NOT NULL DEFAULT '',
    username TEXT NOT NULL DEFAULT '',
    password TEXT,
    form_submit_url TEXT,
    http_realm TEXT
)
"""

_COLUMNS = "id, title, hostname, username, password, form_submit_url, http_realm"


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteLoginStore(LoginStore):
    """Thread-backed SQLite store.

    Searches match ``title``, ``hostname`` and ``username`` with ``LIKE``
    (case-insensitive for ASCII) and return rows in insertion order.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="login-store")
        self._connection: sqlite3.Connection | None = None
        self._closed = False
        self._submit(self._initialise).result()

    # ------------------------------------------------------------------
    # Worker-thread helpers
    # ------------------------------------------------------------------
    def _submit(self, fn, *args) -> Future:
        if self._closed:
            raise StorageError("login store is closed")
        return self._executor.submit(fn, *args)

    def _initialise(self) -> None:
        self._connection = sqlite3.connect(self._path)
        self._connection.execute(_SCHEMA)
        self._connection.commit()
        logger.debug("storage.sqlite.opened", path=self._path)

    def _conn(self) -> sqlite3.Connection:
        if self._connection is None:  # pragma: no cover - set by _initialise
            raise StorageError("login store is not initialised")
        return self._connection

    def _insert(self, records: list[LoginRecord]) -> None:
        rows = [
            (
                record.id,
                record.title,
                record.hostname,
                record.username,
                record.password.get_secret_value() if record.password else None,
                record.form_submit_url,
                record.http_realm,
            )
            for record in records
        ]
        conn = self._conn()
        try:
            with conn:
                conn.executemany(
                    f"INSERT OR REPLACE INTO logins ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to store logins: {exc}") from exc

    def _search(self, query: str) -> list[LoginRecord]:
        pattern = f"%{_escape_like(query)}%"
        try:
            cursor = self._conn().execute(
                f"SELECT {_COLUMNS} FROM logins "
                "WHERE title LIKE ?1 ESCAPE '\\' OR hostname LIKE ?1 ESCAPE '\\' "
                "OR username LIKE ?1 ESCAPE '\\' ORDER BY rowid",
                (pattern,),
            )
            rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"login search failed: {exc}") from exc
        return [
            LoginRecord(
                id=row[0],
                title=row[1],
                hostname=row[2],
                username=row[3],
                password=SecretStr(row[4]) if row[4] is not None else None,
                form_submit_url=row[5],
                http_realm=row[6],
            )
            for row in rows
        ]

    def _close_connection(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def add_logins(self, records: Iterable[LoginRecord]) -> Future[None]:
        return self._submit(self._insert, list(records))

    def search_logins(self, query: str) -> Future[list[LoginRecord]]:
        return self._submit(self._search, query)

    def close(self) -> None:
        if self._closed:
            return
        self._executor.submit(self._close_connection).result()
        self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> SQLiteLoginStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
