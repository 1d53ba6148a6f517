"""Store interface consumed by the login list coordinator.

The coordinator only needs one capability from a credential store: a
substring search. Stores may answer with a coroutine, an asyncio future, a
``concurrent.futures.Future`` completed on a worker thread, or a plain
sequence when the answer is already at hand.

Thread Safety:
    Interface definitions only; see each implementation.
"""

# ==============================================================================
# IMPORTS
# ==============================================================================

from __future__ import annotations

import concurrent.futures
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Sequence
from typing import Union

from Credential_Index.models import LoginRecord

# ==============================================================================
# TYPE DEFINITIONS
# ==============================================================================

SearchOutcome = Union[
    Awaitable[Sequence[LoginRecord]],
    concurrent.futures.Future[Sequence[LoginRecord]],
    Sequence[LoginRecord],
]

# ==============================================================================
# INTERFACES
# ==============================================================================


class StorageError(RuntimeError):
    """Base exception for credential store backends."""


class LoginStore(ABC):
    """Interface for credential stores searched by substring."""

    @abstractmethod
    def search_logins(self, query: str) -> SearchOutcome:
        """Return the records matching ``query``.

        Args:
            query: Substring to look for; the empty string matches every record.

        Returns:
            An awaitable, a concurrent future or a sequence of records, in the
            store's natural order.

        Raises:
            StorageError: If the store cannot run the query. Implementations
                returning futures may instead fail the future.
        """
        raise NotImplementedError


__all__ = ["LoginStore", "SearchOutcome", "StorageError"]
