"""Durable cookie storage behind the jar's in-memory cache."""
from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from persistentjar.cookie import Cookie, CookieKey

logger = structlog.get_logger(__name__)


class CookiePersistenceError(Exception):
    """Raised when the backing store cannot be read or written."""


class CookiePersistor(ABC):
    """Durable mirror of the jar's cookies, keyed by (name, domain, path)."""

    @abstractmethod
    def load_all(self) -> list[Cookie]:
        """Return every stored cookie, or an empty list if none are stored."""

    @abstractmethod
    def save_all(self, cookies: Iterable[Cookie]) -> None:
        """Insert or overwrite cookies by key."""

    @abstractmethod
    def remove_all(self, cookies: Iterable[Cookie]) -> None:
        """Delete cookies by key. Absent cookies are ignored."""

    @abstractmethod
    def clear(self) -> None:
        """Delete everything."""

    def is_null(self) -> bool:
        """Return True if the persistor cannot be used."""
        return False


class MemoryCookiePersistor(CookiePersistor):
    """Process-local persistor, useful for tests and ephemeral clients."""

    def __init__(self) -> None:
        self._cookies: dict[CookieKey, Cookie] = {}

    def load_all(self) -> list[Cookie]:
        return list(self._cookies.values())

    def save_all(self, cookies: Iterable[Cookie]) -> None:
        for cookie in cookies:
            self._cookies[cookie.key] = cookie

    def remove_all(self, cookies: Iterable[Cookie]) -> None:
        for cookie in cookies:
            self._cookies.pop(cookie.key, None)

    def clear(self) -> None:
        self._cookies.clear()


class JsonFileCookiePersistor(CookiePersistor):
    """Stores cookies in a single JSON file.

    File format::

        {"cookies": [{"name": ..., "domain": ..., ...}],
         "metadata": {"saved_at": "...Z", "cookies_count": N}}

    Every write goes to a uniquely named ``<file>.*.tmp`` in the same
    directory, is fsynced, then renamed over the real file. A failed write
    leaves the previous contents intact, and concurrent writers never share
    a temp file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load_all(self) -> list[Cookie]:
        return list(self._read().values())

    def save_all(self, cookies: Iterable[Cookie]) -> None:
        cookies = list(cookies)
        if not cookies:
            return
        stored = self._read()
        for cookie in cookies:
            stored[cookie.key] = cookie
        self._write(stored)

    def remove_all(self, cookies: Iterable[Cookie]) -> None:
        cookies = list(cookies)
        if not cookies:
            return
        stored = self._read()
        removed = 0
        for cookie in cookies:
            if stored.pop(cookie.key, None) is not None:
                removed += 1
        if removed:
            self._write(stored)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise CookiePersistenceError(f"Cannot clear {self.path}: {exc}") from exc
        logger.info("cookie_file_cleared", path=str(self.path))

    def _read(self) -> dict[CookieKey, Cookie]:
        """Load the file into a dict keyed by cookie key.

        Returns:
            Stored cookies; empty if the file does not exist.

        Raises:
            CookiePersistenceError: If the file is unreadable or malformed.
        """
        if not self.path.exists():
            return {}
        try:
            with self.path.open() as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise CookiePersistenceError(f"Cannot read {self.path}: {exc}") from exc

        if not isinstance(data, dict) or "cookies" not in data:
            raise CookiePersistenceError(
                f"Invalid cookie file format (missing 'cookies' key): {self.path}"
            )
        try:
            cookies = [Cookie.model_validate(c) for c in data["cookies"]]
        except ValidationError as exc:
            raise CookiePersistenceError(
                f"Invalid cookie entry in {self.path}: {exc}"
            ) from exc
        return {c.key: c for c in cookies}

    def _write(self, cookies: dict[CookieKey, Cookie]) -> None:
        metadata = {
            "saved_at": datetime.now(tz=UTC).isoformat().replace("+00:00", "Z"),
            "cookies_count": len(cookies),
        }
        data = {
            "cookies": [c.model_dump() for c in cookies.values()],
            "metadata": metadata,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self.path.parent,
                prefix=self.path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_path = Path(f.name)
                try:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                except BaseException:
                    f.close()
                    tmp_path.unlink(missing_ok=True)
                    raise
            try:
                os.replace(tmp_path, self.path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise CookiePersistenceError(f"Cannot write {self.path}: {exc}") from exc
        logger.debug("cookies_saved", path=str(self.path), cookies_count=len(cookies))
