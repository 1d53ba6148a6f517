"""Alphabetical sectioning of login records.

This module turns an unordered batch of login records into the partition a
sectioned list displays: one bucket per leading character of the record's
sort title, plus the sorted sequence of bucket keys.

Key Responsibilities:
    - Derive a single uppercase section key from each record's sort field
    - Group records per key, preserving input order inside each bucket
    - Exclude records whose sort field is blank without failing the batch
    - Raise ``SectioningError`` for records that carry no usable sort field

Collaborators:
    - Upstream: ``LoginListCoordinator`` partitions every accepted store result
    - Downstream: None, the engine is a pure function

Side Effects:
    - None: every call returns freshly allocated containers

Thread Safety:
    - Thread-safe: no shared state, safe to run in an executor

Performance Characteristics:
    - O(n) grouping plus O(k log k) key sorting for k distinct keys

Example:
    >>> sections = compute_sections(records)
    >>> sections.titles
    ('A', 'B', 'C')
"""

from __future__ import annotations

# ==============================================================================
# IMPORTS
# ==============================================================================

import unicodedata
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

SortField = Callable[[Any], object]


# ==============================================================================
# ERRORS
# ==============================================================================


class SectioningError(RuntimeError):
    """Raised when a record cannot be placed in any section."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        super().__init__(message)
        self.index = index


# ==============================================================================
# DATA MODELS
# ==============================================================================


@dataclass(frozen=True, slots=True)
class LoginSections:
    """Result of partitioning a batch of records.

    Attributes:
        titles: Sorted, duplicate-free section keys; every key has a non-empty
            bucket in ``sections``.
        sections: Mapping from section key to the records of that section in
            input order.
        excluded: Number of input records dropped because their sort field
            was blank.
    """

    titles: tuple[str, ...] = ()
    sections: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)
    excluded: int = 0

    @property
    def count(self) -> int:
        """Number of records placed in a section."""
        return sum(len(bucket) for bucket in self.sections.values())


# ==============================================================================
# KEY DERIVATION
# ==============================================================================


def default_sort_field(record: Any) -> object:
    """Return the ``title`` attribute of ``record``, or ``None`` when absent."""
    return getattr(record, "title", None)


def section_key(value: str) -> str | None:
    """Return the section key for a sort field value, ``None`` when blank."""
    stripped = unicodedata.normalize("NFKC", value).strip()
    if not stripped:
        return None
    # Some characters uppercase to several ("ß" -> "SS"); keys stay one character.
    return stripped[0].upper()[0]


def title_for_login(record: Any, *, sort_field: SortField = default_sort_field) -> str | None:
    """Return the section key of ``record``.

    Raises:
        SectioningError: If the sort field is missing or not a string.
    """
    value = sort_field(record)
    if not isinstance(value, str):
        raise SectioningError(
            f"record {record!r} has no string sort field (got {type(value).__name__})"
        )
    return section_key(value)


# ==============================================================================
# PARTITIONING
# ==============================================================================


def compute_sections(
    records: Iterable[Any],
    *,
    sort_field: SortField = default_sort_field,
) -> LoginSections:
    """Partition ``records`` into alphabetical sections.

    Args:
        records: Records in the order the store returned them.
        sort_field: Callable returning the sort field of a record; defaults to
            the record's ``title``.

    Returns:
        A ``LoginSections`` whose buckets keep input order and whose titles are
        sorted. Empty input yields an empty result rather than an error.

    Raises:
        SectioningError: If any record lacks a string sort field.
    """
    buckets: dict[str, list[Any]] = {}
    excluded = 0
    for index, record in enumerate(records):
        try:
            key = title_for_login(record, sort_field=sort_field)
        except SectioningError as exc:
            exc.index = index
            raise
        if key is None:
            excluded += 1
            continue
        buckets.setdefault(key, []).append(record)

    titles = tuple(sorted(buckets))
    sections = {key: tuple(buckets[key]) for key in titles}
    if excluded:
        logger.debug("sections.blank_titles_excluded", excluded=excluded)
    return LoginSections(titles=titles, sections=sections, excluded=excluded)


__all__ = [
    "LoginSections",
    "SectioningError",
    "compute_sections",
    "default_sort_field",
    "section_key",
    "title_for_login",
]
