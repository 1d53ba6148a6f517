"""Coordinator infrastructure for the sectioned login list.

The coordinator owns the search lifecycle (supersession, stale-result
suppression, publication) while the sectioning engine stays a pure function.
"""

from .base import (
    CoordinatorClosedError,
    CoordinatorError,
    LoginSectionsObserver,
    SearchAffordance,
    ViewState,
)
from .login_list import LoginListCoordinator

__all__ = [
    "CoordinatorClosedError",
    "CoordinatorError",
    "LoginListCoordinator",
    "LoginSectionsObserver",
    "SearchAffordance",
    "ViewState",
]
