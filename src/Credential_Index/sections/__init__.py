"""Alphabetical sectioning of login records."""

from .engine import (
    LoginSections,
    SectioningError,
    compute_sections,
    default_sort_field,
    section_key,
    title_for_login,
)

__all__ = [
    "LoginSections",
    "SectioningError",
    "compute_sections",
    "default_sort_field",
    "section_key",
    "title_for_login",
]
