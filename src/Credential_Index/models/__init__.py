"""Domain models for the credential index."""

from .logins import LoginRecord, title_from_hostname

__all__ = ["LoginRecord", "title_from_hostname"]
