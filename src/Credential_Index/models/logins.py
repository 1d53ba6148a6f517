"""Login record model shared by stores, the sectioning engine and coordinators."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr


def title_from_hostname(hostname: str) -> str:
    """Return a display title for ``hostname``.

    The scheme, any path or port and a leading ``www.`` are dropped, so
    ``https://www.example.com/login`` becomes ``example.com``.
    """
    candidate = hostname.strip()
    if "://" not in candidate:
        candidate = f"//{candidate}"
    host = urlsplit(candidate).hostname or ""
    if host.startswith("www."):
        host = host[len("www."):]
    return host


class LoginRecord(BaseModel):
    """A saved credential entry.

    ``title`` is the sort field used for sectioning; it is not validated so
    that stores can hand over whatever they hold, blank titles included.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    title: str
    hostname: str = ""
    username: str = ""
    password: SecretStr | None = Field(default=None, repr=False)
    form_submit_url: str | None = None
    http_realm: str | None = None

    @classmethod
    def from_hostname(cls, id: str, hostname: str, **fields: Any) -> LoginRecord:
        """Build a record whose title is derived from its hostname."""
        return cls(id=id, hostname=hostname, title=title_from_hostname(hostname), **fields)

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match used by the reference stores."""
        if not query:
            return True
        needle = query.casefold()
        return any(
            needle in value.casefold() for value in (self.title, self.hostname, self.username)
        )
