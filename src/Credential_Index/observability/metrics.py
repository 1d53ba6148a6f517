"""Prometheus metrics for login list searches.

Key Responsibilities:
    - Define Prometheus metrics for search requests, supersession and publication
    - Provide small recording helpers so coordinators never touch metric objects

Collaborators:
    - Upstream: ``LoginListCoordinator`` records every request lifecycle step
    - Downstream: Prometheus scraping via the default ``prometheus_client`` registry

Side Effects:
    - Metrics are registered in the default registry at import time

Thread Safety:
    - Thread-safe: All metric operations use atomic Prometheus operations

Example:
    >>> from Credential_Index.observability.metrics import record_search_request
    >>> record_search_request("login-list")
"""

# ==============================================================================
# IMPORTS
# ==============================================================================

from prometheus_client import Counter, Histogram

from Credential_Index.config.settings import get_settings

# ==============================================================================
# METRIC DEFINITIONS
# ==============================================================================

LOGIN_SEARCH_REQUESTS_TOTAL = Counter(
    "login_search_requests_total",
    "Total number of search requests accepted by a coordinator",
    ["coordinator"],
)

LOGIN_SEARCH_SUPERSEDED_TOTAL = Counter(
    "login_search_superseded_total",
    "Search requests replaced by a newer request before publication",
    ["coordinator"],
)

LOGIN_SEARCH_FAILURES_TOTAL = Counter(
    "login_search_failures_total",
    "Search requests that published an empty view because of a failure",
    ["coordinator", "reason"],
)

LOGIN_SEARCH_PUBLISHED_TOTAL = Counter(
    "login_search_published_total",
    "View states published to observers",
    ["coordinator"],
)

LOGIN_STORE_QUERY_DURATION_SECONDS = Histogram(
    "login_store_query_duration_seconds",
    "Duration of store queries issued by a coordinator",
    ["coordinator"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# ==============================================================================
# RECORDING HELPERS
# ==============================================================================


def _enabled() -> bool:
    return get_settings().observability.metrics.enabled


def record_search_request(coordinator: str) -> None:
    """Count a search request accepted by ``coordinator``."""
    if _enabled():
        LOGIN_SEARCH_REQUESTS_TOTAL.labels(coordinator=coordinator).inc()


def record_search_superseded(coordinator: str) -> None:
    """Count a request that lost to a newer one."""
    if _enabled():
        LOGIN_SEARCH_SUPERSEDED_TOTAL.labels(coordinator=coordinator).inc()


def record_search_failure(coordinator: str, reason: str) -> None:
    """Count a failure absorbed into an empty view.

    Args:
        coordinator: Name of the coordinator that absorbed the failure.
        reason: Short failure category such as ``timeout``, ``store`` or
            ``sectioning``.
    """
    if _enabled():
        LOGIN_SEARCH_FAILURES_TOTAL.labels(coordinator=coordinator, reason=reason).inc()


def record_view_published(coordinator: str) -> None:
    if _enabled():
        LOGIN_SEARCH_PUBLISHED_TOTAL.labels(coordinator=coordinator).inc()


def observe_store_query(coordinator: str, duration: float) -> None:
    if _enabled():
        LOGIN_STORE_QUERY_DURATION_SECONDS.labels(coordinator=coordinator).observe(duration)


__all__ = [
    "LOGIN_SEARCH_FAILURES_TOTAL",
    "LOGIN_SEARCH_PUBLISHED_TOTAL",
    "LOGIN_SEARCH_REQUESTS_TOTAL",
    "LOGIN_SEARCH_SUPERSEDED_TOTAL",
    "LOGIN_STORE_QUERY_DURATION_SECONDS",
    "observe_store_query",
    "record_search_failure",
    "record_search_request",
    "record_search_superseded",
    "record_view_published",
]
