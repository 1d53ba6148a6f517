"""Login list coordinator: latest-query-wins search over a credential store.

This module coordinates searches issued by a single UI control against an
asynchronous credential store. Queries may arrive faster than the store can
answer them; only the result of the most recent query is ever published.

Key Responsibilities:
    - Keep at most one outstanding store query, superseding it on every new search
    - Suppress stale results with a monotonic sequence number, whether or not
      cancellation of the superseded query took effect
    - Partition accepted results with the sectioning engine and publish a
      ``ViewState`` to the registered observer on the delivery event loop
    - Absorb store failures, timeouts and malformed records into an empty view
    - Toggle the optional search affordance when the list is empty

Collaborators:
    - Upstream: One UI control calling ``search``; the observer reading state
    - Downstream: ``LoginStore.search_logins``, ``compute_sections``

Side Effects:
    - Creates one asyncio task per search on the delivery loop
    - Emits Prometheus metrics, structured logs and a tracing span per store query

Thread Safety:
    - Not thread-safe: ``search`` and ``close`` must be called from the
      delivery loop's thread by a single owner
    - Store completions may arrive on any thread; they are marshalled onto the
      delivery loop before the sequence check and publication

Example:
    >>> coordinator = LoginListCoordinator(store, observer=view)
    >>> coordinator.search("exa")
    1
    >>> state = await coordinator.wait_until_idle()
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================

import asyncio
import concurrent.futures
import functools
import inspect
import weakref
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from time import perf_counter

import structlog
from opentelemetry import trace
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from Credential_Index.config.settings import SearchSettings, get_settings
from Credential_Index.models import LoginRecord
from Credential_Index.observability.metrics import (
    observe_store_query,
    record_search_failure,
    record_search_request,
    record_search_superseded,
    record_view_published,
)
from Credential_Index.sections import (
    LoginSections,
    SectioningError,
    compute_sections,
    default_sort_field,
)
from Credential_Index.sections.engine import SortField
from Credential_Index.storage import LoginStore

from .base import (
    CoordinatorClosedError,
    CoordinatorError,
    LoginSectionsObserver,
    SearchAffordance,
    ViewState,
)

logger = structlog.get_logger(__name__)
_tracer = trace.get_tracer(__name__)


# ==============================================================================
# IN-FLIGHT REQUEST
# ==============================================================================


@dataclass(slots=True)
class _InFlightRequest:
    sequence: int
    query: str
    task: asyncio.Task[None]


# ==============================================================================
# COORDINATOR IMPLEMENTATION
# ==============================================================================


class LoginListCoordinator:
    """Coordinates searches and publishes the sectioned login list.

    Attributes:
        observer: Collaborator notified once per accepted search; may be
            ``None`` while no view is attached.
        is_during_search_dismiss: UI-owned flag set while the search control
            is being dismissed; the coordinator only carries it.

    Invariants:
        - ``current_sequence`` only grows, and only ``search``/``close`` change it
        - A result is published only while its sequence equals ``current_sequence``
        - The published ``ViewState`` satisfies the count/titles invariants

    Lifecycle:
        - Binds to the running event loop on the first ``search`` call
        - ``close`` cancels outstanding work and rejects further searches
    """

    def __init__(
        self,
        store: LoginStore,
        *,
        observer: LoginSectionsObserver | None = None,
        search_affordance: SearchAffordance | None = None,
        settings: SearchSettings | None = None,
        sort_field: SortField = default_sort_field,
        name: str = "login-list",
    ) -> None:
        if store is None:
            raise ValueError("store cannot be None")
        self._store = store
        self.observer = observer
        self._affordance_ref: weakref.ReferenceType[SearchAffordance] | None = None
        self.search_affordance = search_affordance
        self._settings = settings or get_settings().search
        self._sort_field = sort_field
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._current_sequence = 0
        self._outstanding: _InFlightRequest | None = None
        self._view_state = ViewState.empty()
        self._closed = False
        self.is_during_search_dismiss = False
        self._logger = logger.bind(coordinator=name)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def view_state(self) -> ViewState:
        return self._view_state

    @property
    def count(self) -> int:
        return self._view_state.count

    @property
    def titles(self) -> tuple[str, ...]:
        return self._view_state.titles

    @property
    def sections(self) -> Mapping[str, tuple[LoginRecord, ...]]:
        return self._view_state.sections

    @property
    def current_sequence(self) -> int:
        return self._current_sequence

    @property
    def has_outstanding(self) -> bool:
        return self._outstanding is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def search_affordance(self) -> SearchAffordance | None:
        if self._affordance_ref is None:
            return None
        return self._affordance_ref()

    @search_affordance.setter
    def search_affordance(self, affordance: SearchAffordance | None) -> None:
        self._affordance_ref = weakref.ref(affordance) if affordance is not None else None

    # ------------------------------------------------------------------
    # Index-based access for the list view
    # ------------------------------------------------------------------
    def logins_for_section(self, section: int) -> tuple[LoginRecord, ...] | None:
        """Return the records of ``section``.

        ``section`` is 1-based: index 0 is the list header row. Out-of-range
        indexes return ``None`` and are logged as contract violations.
        """
        state = self._view_state
        if not 1 <= section <= len(state.titles):
            self._logger.warning(
                "login_list.section_out_of_range",
                section=section,
                sections=len(state.titles),
            )
            return None
        title = state.titles[section - 1]
        bucket = state.sections.get(title)
        if bucket is None:
            self._logger.warning("login_list.section_missing", section=section, title=title)
            return None
        return bucket

    def login_at(self, section: int, row: int) -> LoginRecord | None:
        """Return the record at ``row`` of 1-based ``section``, or ``None``."""
        bucket = self.logins_for_section(section)
        if bucket is None:
            return None
        if not 0 <= row < len(bucket):
            self._logger.warning(
                "login_list.row_out_of_range", section=section, row=row, rows=len(bucket)
            )
            return None
        return bucket[row]

    # ------------------------------------------------------------------
    # Search lifecycle
    # ------------------------------------------------------------------
    def search(self, query: str | None = None) -> int:
        """Start a search for ``query`` and return its sequence number.

        Never blocks: the store is queried in a task on the delivery loop and
        the result reaches the observer via ``login_sections_did_update``. Any
        outstanding search is superseded; identical consecutive queries are
        not deduplicated.

        Raises:
            CoordinatorClosedError: If the coordinator has been closed.
            CoordinatorError: If called without a running loop or from a loop
                other than the one bound by the first search.
        """
        if self._closed:
            raise CoordinatorClosedError(f"{self._name} is closed")
        loop = self._delivery_loop()
        query = query or ""

        self._supersede_outstanding()
        self._current_sequence += 1
        sequence = self._current_sequence

        task = loop.create_task(
            self._run_request(sequence, query), name=f"{self._name}-search-{sequence}"
        )
        task.add_done_callback(self._on_request_done)
        self._outstanding = _InFlightRequest(sequence=sequence, query=query, task=task)
        record_search_request(self._name)
        self._logger.debug("login_list.search.issued", sequence=sequence, query_length=len(query))
        return sequence

    async def wait_until_idle(self) -> ViewState:
        """Wait for the latest outstanding search and return the current state."""
        while self._outstanding is not None and not self._outstanding.task.done():
            await asyncio.wait({self._outstanding.task})
        return self._view_state

    def close(self) -> None:
        """Cancel outstanding work and refuse further searches.

        Late completions of requests issued before ``close`` are ignored.
        """
        if self._closed:
            return
        self._closed = True
        self._current_sequence += 1
        outstanding, self._outstanding = self._outstanding, None
        if outstanding is not None and not outstanding.task.done():
            outstanding.task.cancel()
            self._logger.debug("login_list.closed_with_outstanding", sequence=outstanding.sequence)

    async def __aenter__(self) -> LoginListCoordinator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _delivery_loop(self) -> asyncio.AbstractEventLoop:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None:
            if running is None:
                raise CoordinatorError(f"{self._name}.search() requires a running event loop")
            self._loop = running
        elif running is not self._loop:
            raise CoordinatorError(
                f"{self._name}.search() must be called on its delivery loop",
                context={"coordinator": self._name},
            )
        return self._loop

    def _supersede_outstanding(self) -> None:
        outstanding, self._outstanding = self._outstanding, None
        if outstanding is None or outstanding.task.done():
            return
        record_search_superseded(self._name)
        self._logger.debug(
            "login_list.search.superseded",
            sequence=outstanding.sequence,
            cancelled=self._settings.cancel_superseded,
        )
        if self._settings.cancel_superseded:
            outstanding.task.cancel()

    def _is_current(self, sequence: int) -> bool:
        return not self._closed and sequence == self._current_sequence

    def _discard(self, sequence: int, *, stage: str) -> None:
        self._logger.debug(
            "login_list.search.discarded_stale",
            sequence=sequence,
            current=self._current_sequence,
            stage=stage,
        )

    async def _run_request(self, sequence: int, query: str) -> None:
        sections: LoginSections | None = None
        failure = "store"
        try:
            records = await self._query_store(query)
            if not self._is_current(sequence):
                self._discard(sequence, stage="store")
                return
            failure = "sectioning"
            sections = await self._partition(records)
        except asyncio.TimeoutError:
            failure = "timeout"
            self._logger.warning(
                "login_list.search.timeout",
                sequence=sequence,
                timeout=self._settings.query_timeout_seconds,
            )
        except SectioningError as exc:
            failure = "sectioning"
            self._logger.warning(
                "login_list.search.malformed_record",
                sequence=sequence,
                index=exc.index,
                error=str(exc),
            )
        except Exception as exc:
            self._logger.warning(
                "login_list.search.failed",
                sequence=sequence,
                stage=failure,
                error=str(exc),
                error_type=type(exc).__name__,
            )

        if not self._is_current(sequence):
            self._discard(sequence, stage="partition")
            return
        if sections is None:
            record_search_failure(self._name, failure)
            view_state = ViewState.empty(query=query, sequence=sequence)
        else:
            view_state = ViewState.from_sections(sections, query=query, sequence=sequence)
        self._publish(view_state)

    async def _query_store(self, query: str) -> list[LoginRecord]:
        start = perf_counter()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(
                multiplier=self._settings.retry_wait_base,
                max=self._settings.retry_wait_max,
            ),
            reraise=True,
        )
        with _tracer.start_as_current_span("login_list.store_query") as span:
            span.set_attribute("login_list.coordinator", self._name)
            span.set_attribute("login_list.query_length", len(query))
            try:
                async for attempt in retrying:
                    with attempt:
                        records = await self._await_store(query)
            finally:
                observe_store_query(self._name, perf_counter() - start)
            span.set_attribute("login_list.records", len(records))
        return records

    async def _await_store(self, query: str) -> list[LoginRecord]:
        outcome = self._store.search_logins(query)
        if isinstance(outcome, concurrent.futures.Future):
            awaitable = asyncio.wrap_future(outcome)
        elif inspect.isawaitable(outcome):
            awaitable = outcome
        else:
            return list(outcome)
        timeout = self._settings.query_timeout_seconds
        if timeout is None:
            result: Sequence[LoginRecord] = await awaitable
        else:
            result = await asyncio.wait_for(awaitable, timeout)
        return list(result)

    async def _partition(self, records: list[LoginRecord]) -> LoginSections:
        if not self._settings.section_in_executor:
            return compute_sections(records, sort_field=self._sort_field)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(compute_sections, records, sort_field=self._sort_field)
        )

    def _publish(self, view_state: ViewState) -> None:
        self._view_state = view_state
        record_view_published(self._name)
        self._logger.info(
            "login_list.view_state.published",
            sequence=view_state.sequence,
            count=view_state.count,
            sections=len(view_state.titles),
        )
        if self.observer is not None:
            self.observer.login_sections_did_update(view_state)
        self._update_search_affordance(view_state)

    def _update_search_affordance(self, view_state: ViewState) -> None:
        affordance = self.search_affordance
        if affordance is None or affordance.is_active:
            return
        affordance.set_interaction_enabled(not view_state.is_empty)
        affordance.set_alpha(0.5 if view_state.is_empty else 1.0)

    def _on_request_done(self, task: asyncio.Task[None]) -> None:
        if self._outstanding is not None and self._outstanding.task is task:
            self._outstanding = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "login_list.publication_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )


__all__ = ["LoginListCoordinator"]
