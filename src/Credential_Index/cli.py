"""Command line front end for the credential index.

Loads login records from a SQLite database or a JSON file, runs queries
through ``LoginListCoordinator`` and prints the sectioned result.

Example:
-------
    >>> credential-index --json logins.json --query ex --query exa
    >>> credential-index --db logins.sqlite

Queries are issued back to back, so earlier ones are superseded and only the
last query's view is printed.
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import ValidationError

from .config import get_settings
from .coordinators import LoginListCoordinator, ViewState
from .models import LoginRecord
from .observability import setup_observability
from .storage import InMemoryLoginStore, LoginStore, SQLiteLoginStore

logger = structlog.get_logger(__name__)


# ==============================================================================
# HELPERS
# ==============================================================================


class _CollectingObserver:
    def __init__(self) -> None:
        self.published: list[ViewState] = []

    def login_sections_did_update(self, view_state: ViewState) -> None:
        self.published.append(view_state)


def load_json_records(path: Path) -> list[LoginRecord]:
    """Read a JSON array of login objects.

    Objects without a ``title`` get one derived from their ``hostname``.

    Raises:
        ValueError: If the file is not a JSON array, or an entry is not an
            object, lacks both ``title`` and ``hostname``, or fails validation.
            The message names the offending entry's index.
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON array of logins")
    records: list[LoginRecord] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValueError(f"{path}: entry {index} must be a JSON object")
        data = dict(item)
        data.setdefault("id", str(index))
        if "title" not in data and not isinstance(data.get("hostname"), str):
            raise ValueError(f"{path}: entry {index} needs a title or a hostname string")
        try:
            if "title" in data:
                records.append(LoginRecord.model_validate(data))
            else:
                records.append(LoginRecord.from_hostname(**data))
        except ValidationError as exc:
            raise ValueError(f"{path}: entry {index} is not a valid login: {exc}") from exc
    return records


def format_view_state(view_state: ViewState) -> str:
    """Render a view state as an indented plain-text listing."""
    if view_state.is_empty:
        return "No logins found."
    lines: list[str] = []
    for title in view_state.titles:
        lines.append(title)
        for record in view_state.sections[title]:
            suffix = f" ({record.username})" if record.username else ""
            lines.append(f"  {record.title}{suffix}")
    lines.append(f"{view_state.count} login(s) in {len(view_state.titles)} section(s)")
    return "\n".join(lines)


async def run_queries(store: LoginStore, queries: Sequence[str]) -> ViewState:
    """Issue ``queries`` back to back and return the published view."""
    observer = _CollectingObserver()
    async with LoginListCoordinator(store, observer=observer, name="cli") as coordinator:
        for query in queries or [""]:
            coordinator.search(query)
        view_state = await coordinator.wait_until_idle()
    logger.debug("cli.queries.completed", issued=len(queries), published=len(observer.published))
    return view_state


# ==============================================================================
# CLI INTERFACE
# ==============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search and section saved logins")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--db", type=Path, help="SQLite database holding a logins table")
    source.add_argument("--json", type=Path, help="JSON array of login objects")
    parser.add_argument(
        "--query",
        action="append",
        default=[],
        help="Query to run; repeat to issue several searches back to back",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    # stdout carries the listing only
    setup_observability(get_settings(), stream=sys.stderr)

    if args.db is not None:
        store: LoginStore = SQLiteLoginStore(args.db)
    else:
        try:
            records = load_json_records(args.json)
        except (OSError, ValueError) as exc:
            parser.error(str(exc))
        store = InMemoryLoginStore(records)

    try:
        view_state = asyncio.run(run_queries(store, args.query))
    finally:
        if isinstance(store, SQLiteLoginStore):
            store.close()

    print(format_view_state(view_state))
    return 0


__all__ = ["build_parser", "format_view_state", "load_json_records", "main", "run_queries"]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
