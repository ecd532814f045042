"""In-memory working set of cookies."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator

from persistentjar.cookie import Cookie, CookieKey


class CookieCache(ABC):
    """Fast in-memory cookie container consulted on every request."""

    @abstractmethod
    def add_all(self, cookies: Iterable[Cookie]) -> None:
        """Insert cookies, replacing any stored under the same key."""

    @abstractmethod
    def remove_all(self, cookies: Iterable[Cookie]) -> None:
        """Remove cookies by key. Absent cookies are ignored."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every cookie."""

    @abstractmethod
    def __iter__(self) -> Iterator[Cookie]:
        """Iterate over the cookies. Removing during iteration is allowed."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of cookies held."""

    def is_null(self) -> bool:
        """Return True if the cache cannot be used."""
        return False


class SetCookieCache(CookieCache):
    """CookieCache backed by a dict keyed by (name, domain, path).

    Last write wins for a given key, so adding a batch that contains
    duplicates keeps the final occurrence.
    """

    def __init__(self) -> None:
        self._cookies: dict[CookieKey, Cookie] = {}

    def add_all(self, cookies: Iterable[Cookie]) -> None:
        for cookie in cookies:
            self._cookies[cookie.key] = cookie

    def remove_all(self, cookies: Iterable[Cookie]) -> None:
        for cookie in cookies:
            self._cookies.pop(cookie.key, None)

    def clear(self) -> None:
        self._cookies.clear()

    def __iter__(self) -> Iterator[Cookie]:
        # Snapshot so callers may remove while iterating.
        return iter(list(self._cookies.values()))

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, cookie: object) -> bool:
        return isinstance(cookie, Cookie) and self._cookies.get(cookie.key) == cookie
