import asyncio
import concurrent.futures
import gc
import threading
from collections import defaultdict
from types import SimpleNamespace

import pytest
from prometheus_client import REGISTRY

from Credential_Index.config import SearchSettings
from Credential_Index.coordinators import (
    CoordinatorClosedError,
    CoordinatorError,
    LoginListCoordinator,
    ViewState,
)
from Credential_Index.models import LoginRecord
from Credential_Index.storage import InMemoryLoginStore, LoginStore, StorageError


def _login(login_id: str, title: str, username: str = "") -> LoginRecord:
    return LoginRecord(id=login_id, title=title, username=username)


SAMPLE = [
    _login("1", "banana"),
    _login("2", "Apple"),
    _login("3", "apple"),
    _login("4", "Cherry"),
    _login("5", "  "),
]


class _RecordingObserver:
    def __init__(self) -> None:
        self.states: list[ViewState] = []
        self.threads: list[int] = []

    def login_sections_did_update(self, view_state: ViewState) -> None:
        self.states.append(view_state)
        self.threads.append(threading.get_ident())


class _ControlledStore(LoginStore):
    """Hands out one asyncio future per query; tests decide when each resolves."""

    def __init__(self) -> None:
        self.futures: dict[str, list[asyncio.Future]] = defaultdict(list)
        self.queries: list[str] = []

    def search_logins(self, query: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self.queries.append(query)
        self.futures[query].append(future)
        return future

    def resolve(self, query: str, records) -> None:
        future = next(f for f in self.futures[query] if not f.done())
        future.set_result(records)


class _ThreadedStore(LoginStore):
    """Completes concurrent futures from timer threads after ``delays[query]``."""

    def __init__(self, records, delays: dict[str, float]) -> None:
        self._records = list(records)
        self._delays = delays
        self.completion_threads: list[int] = []

    def search_logins(self, query: str) -> concurrent.futures.Future:
        future: concurrent.futures.Future = concurrent.futures.Future()

        def complete() -> None:
            if future.set_running_or_notify_cancel():
                self.completion_threads.append(threading.get_ident())
                future.set_result([r for r in self._records if r.matches(query)])

        threading.Timer(self._delays.get(query, 0.0), complete).start()
        return future


class _StaticStore(LoginStore):
    def __init__(self, records) -> None:
        self._records = records

    def search_logins(self, query: str):
        return list(self._records)


class _FlakyStore(LoginStore):
    def __init__(self, failures: int, records) -> None:
        self.calls = 0
        self._failures = failures
        self._records = records

    async def search_logins(self, query: str):
        self.calls += 1
        if self.calls <= self._failures:
            raise StorageError("database is locked")
        return list(self._records)


class _SearchBar:
    def __init__(self, *, active: bool = False) -> None:
        self.is_active = active
        self.enabled: bool | None = None
        self.alpha: float | None = None

    def set_interaction_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def set_alpha(self, alpha: float) -> None:
        self.alpha = alpha


async def _until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition never became true")


async def _settle() -> None:
    current = asyncio.current_task()
    pending = [task for task in asyncio.all_tasks() if task is not current]
    if pending:
        await asyncio.wait(pending, timeout=2)


def _settings(**overrides) -> SearchSettings:
    values = {"query_timeout_seconds": None}
    values.update(overrides)
    return SearchSettings(**values)


def _sample_value(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_stale_result_is_suppressed_when_older_query_resolves_last():
    store = _ControlledStore()
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        store, observer=observer, settings=_settings(cancel_superseded=False)
    )

    coordinator.search("a")
    seq_b = coordinator.search("b")
    await _until(lambda: store.queries == ["a", "b"])

    store.resolve("b", [_login("2", "bravo")])
    await coordinator.wait_until_idle()
    store.resolve("a", [_login("1", "alpha")])
    await _settle()

    assert len(observer.states) == 1
    state = observer.states[0]
    assert state.query == "b"
    assert state.sequence == seq_b
    assert state.titles == ("B",)
    assert coordinator.titles == ("B",)


@pytest.mark.asyncio
async def test_late_result_of_superseded_query_cannot_overtake_newer_one():
    store = _ControlledStore()
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        store, observer=observer, settings=_settings(cancel_superseded=False)
    )

    coordinator.search("a")
    coordinator.search("b")
    await _until(lambda: store.queries == ["a", "b"])

    store.resolve("a", [_login("1", "alpha")])
    await _until(lambda: all(f.done() for f in store.futures["a"]))
    await asyncio.sleep(0.01)
    assert observer.states == []

    store.resolve("b", [_login("2", "bravo")])
    await coordinator.wait_until_idle()

    assert [state.query for state in observer.states] == ["b"]


@pytest.mark.asyncio
async def test_superseded_in_flight_query_is_cancelled():
    store = _ControlledStore()
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(store, observer=observer, settings=_settings())

    coordinator.search("a")
    await _until(lambda: store.queries == ["a"])
    coordinator.search("b")
    await _until(lambda: store.queries == ["a", "b"])

    assert store.futures["a"][0].cancelled()
    store.resolve("b", [_login("2", "bravo")])
    await coordinator.wait_until_idle()

    assert [state.query for state in observer.states] == ["b"]


@pytest.mark.asyncio
async def test_query_superseded_before_it_starts_never_reaches_store():
    store = _ControlledStore()
    coordinator = LoginListCoordinator(store, settings=_settings())

    coordinator.search("a")
    coordinator.search("b")
    await _until(lambda: store.queries == ["b"])
    store.resolve("b", [])
    await coordinator.wait_until_idle()

    assert store.queries == ["b"]


@pytest.mark.asyncio
async def test_repeated_identical_queries_each_publish():
    store = InMemoryLoginStore([*SAMPLE, _login("6", "xkcd"), _login("7", "Inbox", "max")])
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(store, observer=observer, settings=_settings())

    first = coordinator.search("x")
    await coordinator.wait_until_idle()
    second = coordinator.search("x")
    await coordinator.wait_until_idle()

    assert store.queries == ["x", "x"]
    assert [state.sequence for state in observer.states] == [first, second]
    one, two = observer.states
    assert one.titles == ("I", "X")
    assert (one.count, one.titles, dict(one.sections)) == (two.count, two.titles, dict(two.sections))


@pytest.mark.asyncio
async def test_empty_query_goes_through_the_store_and_returns_everything():
    store = InMemoryLoginStore(SAMPLE)
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(store, observer=observer, settings=_settings())

    coordinator.search()
    assert observer.states == []
    state = await coordinator.wait_until_idle()

    assert store.queries == [""]
    assert state.titles == ("A", "B", "C")
    assert state.count == 4
    assert [r.title for r in state.sections["A"]] == ["Apple", "apple"]
    assert sum(len(state.sections[key]) for key in state.titles) == state.count


@pytest.mark.asyncio
async def test_store_failure_publishes_empty_view_state():
    store = InMemoryLoginStore(SAMPLE)
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        store, observer=observer, settings=_settings(), name="failure-test"
    )
    coordinator.search("")
    await coordinator.wait_until_idle()
    before = _sample_value(
        "login_search_failures_total", coordinator="failure-test", reason="store"
    )

    store.failure = StorageError("disk I/O error")
    coordinator.search("")
    state = await coordinator.wait_until_idle()

    assert len(observer.states) == 2
    assert state.is_empty
    assert state.titles == ()
    assert dict(state.sections) == {}
    assert coordinator.count == 0
    assert (
        _sample_value("login_search_failures_total", coordinator="failure-test", reason="store")
        == before + 1
    )


@pytest.mark.asyncio
async def test_store_timeout_publishes_empty_view_state():
    store = InMemoryLoginStore(SAMPLE, latency=0.5)
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        store, observer=observer, settings=SearchSettings(query_timeout_seconds=0.01)
    )

    coordinator.search("a")
    state = await coordinator.wait_until_idle()

    assert len(observer.states) == 1
    assert state.is_empty
    assert state.query == "a"


@pytest.mark.asyncio
async def test_malformed_record_publishes_empty_view_state():
    store = _StaticStore([_login("1", "alpha"), SimpleNamespace(id="2", title=None)])
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(store, observer=observer, settings=_settings())

    coordinator.search("")
    state = await coordinator.wait_until_idle()

    assert observer.states == [state]
    assert state.count == 0


@pytest.mark.asyncio
async def test_sort_field_error_is_counted_as_sectioning_failure():
    def broken_sort_field(record):
        raise AttributeError("no sort field")

    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        _StaticStore([_login("1", "alpha")]),
        observer=observer,
        settings=_settings(),
        sort_field=broken_sort_field,
        name="sort-field-test",
    )
    sectioning_before = _sample_value(
        "login_search_failures_total", coordinator="sort-field-test", reason="sectioning"
    )
    store_before = _sample_value(
        "login_search_failures_total", coordinator="sort-field-test", reason="store"
    )

    coordinator.search("")
    state = await coordinator.wait_until_idle()

    assert observer.states == [state]
    assert state.is_empty
    assert (
        _sample_value(
            "login_search_failures_total", coordinator="sort-field-test", reason="sectioning"
        )
        == sectioning_before + 1
    )
    assert (
        _sample_value("login_search_failures_total", coordinator="sort-field-test", reason="store")
        == store_before
    )


@pytest.mark.asyncio
async def test_store_failures_are_retried_when_configured():
    store = _FlakyStore(failures=1, records=[_login("1", "alpha")])
    coordinator = LoginListCoordinator(
        store,
        settings=_settings(retry_attempts=2, retry_wait_base=0.0, retry_wait_max=0.0),
    )

    coordinator.search("")
    state = await coordinator.wait_until_idle()

    assert store.calls == 2
    assert state.titles == ("A",)


@pytest.mark.asyncio
async def test_completions_from_worker_threads_publish_on_the_loop_thread():
    store = _ThreadedStore(SAMPLE, delays={"a": 0.05, "b": 0.01})
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        store, observer=observer, settings=_settings(cancel_superseded=False)
    )
    loop_thread = threading.get_ident()

    coordinator.search("a")
    coordinator.search("b")
    await coordinator.wait_until_idle()
    await asyncio.sleep(0.1)
    await _settle()

    assert [state.query for state in observer.states] == ["b"]
    assert observer.threads == [loop_thread]
    assert store.completion_threads
    assert loop_thread not in store.completion_threads


@pytest.mark.asyncio
async def test_sectioning_in_executor_publishes_on_the_loop_thread():
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(
        InMemoryLoginStore(SAMPLE),
        observer=observer,
        settings=_settings(section_in_executor=True),
    )

    coordinator.search("an")
    state = await coordinator.wait_until_idle()

    assert state.titles == ("B",)
    assert observer.threads == [threading.get_ident()]


@pytest.mark.asyncio
async def test_close_discards_outstanding_request_and_rejects_new_searches():
    store = _ThreadedStore(SAMPLE, delays={"a": 0.02})
    observer = _RecordingObserver()
    coordinator = LoginListCoordinator(store, observer=observer, settings=_settings())

    coordinator.search("a")
    await asyncio.sleep(0)
    coordinator.close()
    await asyncio.sleep(0.05)
    await _settle()

    assert observer.states == []
    assert coordinator.closed
    assert not coordinator.has_outstanding
    with pytest.raises(CoordinatorClosedError):
        coordinator.search("b")


@pytest.mark.asyncio
async def test_async_context_manager_closes_coordinator():
    async with LoginListCoordinator(InMemoryLoginStore(SAMPLE), settings=_settings()) as coordinator:
        coordinator.search("")
        await coordinator.wait_until_idle()

    assert coordinator.closed
    assert coordinator.count == 4


def test_search_requires_running_event_loop():
    coordinator = LoginListCoordinator(InMemoryLoginStore(), settings=_settings())

    with pytest.raises(CoordinatorError):
        coordinator.search("a")


@pytest.mark.asyncio
async def test_index_accessors_return_none_out_of_range():
    coordinator = LoginListCoordinator(InMemoryLoginStore(SAMPLE), settings=_settings())
    assert coordinator.login_at(1, 0) is None

    coordinator.search("")
    await coordinator.wait_until_idle()

    assert coordinator.login_at(1, 0).title == "Apple"
    assert coordinator.login_at(1, 1).title == "apple"
    assert coordinator.login_at(3, 0).title == "Cherry"
    assert coordinator.login_at(0, 0) is None
    assert coordinator.login_at(99, 0) is None
    assert coordinator.login_at(1, 99) is None
    assert coordinator.login_at(1, -1) is None
    assert coordinator.logins_for_section(0) is None
    assert coordinator.logins_for_section(4) is None
    assert [r.title for r in coordinator.logins_for_section(2)] == ["banana"]


@pytest.mark.asyncio
async def test_search_affordance_follows_emptiness_when_inactive():
    store = InMemoryLoginStore()
    bar = _SearchBar()
    coordinator = LoginListCoordinator(store, search_affordance=bar, settings=_settings())

    coordinator.search("")
    await coordinator.wait_until_idle()
    assert (bar.enabled, bar.alpha) == (False, 0.5)

    store.add_logins(SAMPLE)
    coordinator.search("")
    await coordinator.wait_until_idle()
    assert (bar.enabled, bar.alpha) == (True, 1.0)


@pytest.mark.asyncio
async def test_active_search_affordance_is_left_alone():
    bar = _SearchBar(active=True)
    coordinator = LoginListCoordinator(
        InMemoryLoginStore(), search_affordance=bar, settings=_settings()
    )

    coordinator.search("")
    await coordinator.wait_until_idle()

    assert bar.enabled is None
    assert bar.alpha is None


@pytest.mark.asyncio
async def test_search_affordance_is_weakly_referenced():
    bar = _SearchBar()
    coordinator = LoginListCoordinator(
        InMemoryLoginStore(SAMPLE), search_affordance=bar, settings=_settings()
    )
    assert coordinator.search_affordance is bar

    del bar
    gc.collect()
    coordinator.search("")
    state = await coordinator.wait_until_idle()

    assert coordinator.search_affordance is None
    assert state.count == 4


@pytest.mark.asyncio
async def test_observer_failure_does_not_break_later_searches():
    class _ExplodingObserver:
        def __init__(self) -> None:
            self.calls = 0

        def login_sections_did_update(self, view_state: ViewState) -> None:
            self.calls += 1
            raise RuntimeError("table view out of sync")

    observer = _ExplodingObserver()
    coordinator = LoginListCoordinator(
        InMemoryLoginStore(SAMPLE), observer=observer, settings=_settings()
    )

    coordinator.search("")
    await coordinator.wait_until_idle()
    coordinator.search("cherry")
    state = await coordinator.wait_until_idle()

    assert observer.calls == 2
    assert state.titles == ("C",)


@pytest.mark.asyncio
async def test_supersession_metrics_are_recorded():
    store = _ControlledStore()
    coordinator = LoginListCoordinator(store, settings=_settings(), name="metrics-test")
    requests = _sample_value("login_search_requests_total", coordinator="metrics-test")
    superseded = _sample_value("login_search_superseded_total", coordinator="metrics-test")

    coordinator.search("a")
    coordinator.search("b")
    await _until(lambda: store.queries == ["b"])
    store.resolve("b", [])
    await coordinator.wait_until_idle()

    assert _sample_value("login_search_requests_total", coordinator="metrics-test") == requests + 2
    assert (
        _sample_value("login_search_superseded_total", coordinator="metrics-test")
        == superseded + 1
    )
