"""Credential index - sectioned, latest-query-wins search over saved logins.

Key Responsibilities:
    - Partition login records into alphabetical sections (``sections``)
    - Coordinate searches against an asynchronous store (``coordinators``)
    - Provide reference stores, configuration, logging and metrics helpers

Collaborators:
    - Upstream: UI layers calling ``LoginListCoordinator.search``
    - Downstream: Credential stores implementing ``LoginStore``

Example:
    >>> from Credential_Index import LoginListCoordinator, InMemoryLoginStore
    >>> coordinator = LoginListCoordinator(InMemoryLoginStore())
"""

from .coordinators import LoginListCoordinator, ViewState
from .models import LoginRecord
from .sections import LoginSections, SectioningError, compute_sections
from .storage import InMemoryLoginStore, LoginStore, SQLiteLoginStore, StorageError

__version__ = "0.1.0"

__all__ = [
    "InMemoryLoginStore",
    "LoginListCoordinator",
    "LoginRecord",
    "LoginSections",
    "LoginStore",
    "SQLiteLoginStore",
    "SectioningError",
    "StorageError",
    "ViewState",
    "compute_sections",
]
