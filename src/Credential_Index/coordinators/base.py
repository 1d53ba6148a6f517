"""Shared coordinator types: view state, collaborator protocols and errors.

Key Components:
    - ViewState: Immutable snapshot published to observers after each accepted search
    - LoginSectionsObserver: Protocol implemented by the UI collaborator
    - SearchAffordance: Optional search control the coordinator may enable or dim
    - CoordinatorError / CoordinatorClosedError: Misuse of a coordinator

Thread Safety:
    - ViewState is immutable and safe to hand across threads
    - Protocol implementations are only called on the coordinator's delivery loop
"""

from __future__ import annotations

# ============================================================================
# IMPORTS
# ============================================================================
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from Credential_Index.models import LoginRecord
from Credential_Index.sections import LoginSections

# ============================================================================
# DATA MODELS
# ============================================================================


@dataclass(frozen=True, slots=True)
class ViewState:
    """Snapshot of the sectioned login list.

    Attributes:
        count: Number of records placed in a section.
        titles: Sorted, duplicate-free section keys.
        sections: Records per section key, in store order.
        query: Query text that produced this state.
        sequence: Sequence number of the request that produced this state;
            ``0`` for the initial state.

    Invariants:
        - ``sum(len(sections[k]) for k in titles) == count``
        - every key in ``titles`` has a non-empty bucket in ``sections``
    """

    count: int = 0
    titles: tuple[str, ...] = ()
    sections: Mapping[str, tuple[LoginRecord, ...]] = field(default_factory=dict)
    query: str = ""
    sequence: int = 0

    @property
    def is_empty(self) -> bool:
        """Whether the search control should be disabled."""
        return self.count == 0

    @classmethod
    def empty(cls, *, query: str = "", sequence: int = 0) -> ViewState:
        return cls(query=query, sequence=sequence)

    @classmethod
    def from_sections(cls, sections: LoginSections, *, query: str, sequence: int) -> ViewState:
        return cls(
            count=sections.count,
            titles=sections.titles,
            sections=dict(sections.sections),
            query=query,
            sequence=sequence,
        )


# ============================================================================
# COLLABORATOR PROTOCOLS
# ============================================================================


class LoginSectionsObserver(Protocol):
    """Receives one notification per accepted search."""

    def login_sections_did_update(self, view_state: ViewState) -> None:  # pragma: no cover
        ...


class SearchAffordance(Protocol):
    """Search control owned by the UI.

    The coordinator keeps only a weak reference; a control that has gone
    away is simply skipped.
    """

    @property
    def is_active(self) -> bool:  # pragma: no cover - protocol definition
        ...

    def set_interaction_enabled(self, enabled: bool) -> None:  # pragma: no cover
        ...

    def set_alpha(self, alpha: float) -> None:  # pragma: no cover
        ...


# ============================================================================
# ERRORS
# ============================================================================


class CoordinatorError(RuntimeError):
    """Raised when a coordinator is used outside its contract."""

    def __init__(self, message: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = context or {}


class CoordinatorClosedError(CoordinatorError):
    """Raised when ``search`` is called after ``close``."""


__all__ = [
    "CoordinatorClosedError",
    "CoordinatorError",
    "LoginSectionsObserver",
    "SearchAffordance",
    "ViewState",
]
