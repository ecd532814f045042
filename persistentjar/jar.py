"""Persistent cookie jar: in-memory cache kept in sync with a durable store.

Identity cookies (SSO tickets and session ids) get two extra rules on the
way in from a response:

* only responses from a login host may set or update them, so a concurrent
  non-login request cannot clobber a fresh ticket with a stale one;
* every identity cookie that survives is replicated onto each sibling
  domain it is not already on, so one login covers all of them.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable

import httpx
import structlog

from persistentjar.cache import CookieCache
from persistentjar.config import JarConfig
from persistentjar.cookie import Cookie, now_millis
from persistentjar.persistence import CookiePersistenceError, CookiePersistor

logger = structlog.get_logger(__name__)


class ClearableCookieJar(ABC):
    """Cookie jar contract used by an HTTP client's request pipeline."""

    @abstractmethod
    def load_for_request(self, url: httpx.URL | str) -> list[Cookie]:
        """Return the cookies to attach to a request for url."""

    @abstractmethod
    def save_from_response(self, url: httpx.URL | str, cookies: Iterable[Cookie]) -> None:
        """Store cookies received in a response from url."""

    @abstractmethod
    def clear_session(self) -> None:
        """Drop cookies that were never persisted."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every cookie, persisted or not."""


class PersistentCookieJar(ClearableCookieJar):
    """Cookie jar backed by a CookieCache and a CookiePersistor.

    All public operations run under one lock per jar, so each
    sync/evict/persist and filter/replicate/write sequence is atomic with
    respect to the others.
    """

    def __init__(
        self,
        cache: CookieCache | None,
        persistor: CookiePersistor | None,
        config: JarConfig | None = None,
    ) -> None:
        self.cache = cache
        self.persistor = persistor
        self.config = config or JarConfig()
        self._lock = threading.Lock()

        if self.is_null():
            logger.warning(
                "cookie_jar_null",
                has_cache=cache is not None,
                has_persistor=persistor is not None,
            )
            return
        with self._lock:
            self._sync_from_persistor()

    def is_null(self) -> bool:
        """Return True if the jar lacks a usable cache or persistor."""
        return (
            self.cache is None
            or self.cache.is_null()
            or self.persistor is None
            or self.persistor.is_null()
        )

    def load_for_request(self, url: httpx.URL | str) -> list[Cookie]:
        """Return unexpired cookies matching url, evicting expired ones.

        Args:
            url: The request URL.

        Returns:
            Matching cookies in no particular order.
        """
        if self.is_null():
            return []
        url = httpx.URL(url)

        with self._lock:
            self._sync_from_persistor()

            now = now_millis()
            expired: list[Cookie] = []
            valid: list[Cookie] = []
            for cookie in self.cache:
                if cookie.is_expired(now):
                    expired.append(cookie)
                elif cookie.matches(url):
                    valid.append(cookie)

            if expired:
                self.cache.remove_all(expired)
                logger.debug(
                    "expired_cookies_evicted",
                    count=len(expired),
                    names=sorted({c.name for c in expired}),
                )
                try:
                    self.persistor.remove_all(expired)
                except CookiePersistenceError as exc:
                    logger.error("persistor_remove_failed", error=str(exc))

            return valid

    def save_from_response(self, url: httpx.URL | str, cookies: Iterable[Cookie]) -> None:
        """Filter, replicate and store cookies received from url.

        Args:
            url: The URL the response came from.
            cookies: Cookies parsed from the response's Set-Cookie headers.
        """
        if self.is_null():
            logger.warning("save_on_null_jar_ignored")
            return
        url = httpx.URL(url)
        cookies = list(cookies)
        if not cookies:
            return

        with self._lock:
            filtered = self._filter_login_cookies(url, cookies)
            replicated = self._copy_login_cookies(filtered)

            self.cache.add_all(replicated)

            to_persist = replicated
            if not self.config.persist_session_cookies:
                to_persist = [c for c in replicated if c.persistent]
            try:
                self.persistor.save_all(to_persist)
            except CookiePersistenceError as exc:
                logger.error(
                    "persistor_save_failed", host=url.host, error=str(exc)
                )

    def clear_session(self) -> None:
        """Reload the cache from the persistor, dropping memory-only cookies."""
        if self.is_null():
            return
        with self._lock:
            self.cache.clear()
            self._sync_from_persistor()

    def clear(self) -> None:
        """Empty both the cache and the persistor."""
        if self.is_null():
            return
        with self._lock:
            self.cache.clear()
            try:
                self.persistor.clear()
            except CookiePersistenceError as exc:
                logger.error("persistor_clear_failed", error=str(exc))
            logger.info("cookie_jar_cleared")

    def _sync_from_persistor(self) -> None:
        """Merge all persisted cookies into the cache. Caller holds the lock."""
        try:
            persisted = self.persistor.load_all()
        except CookiePersistenceError as exc:
            logger.error("persistor_load_failed", error=str(exc))
            return
        if persisted:
            self.cache.add_all(persisted)

    def _filter_login_cookies(self, url: httpx.URL, cookies: list[Cookie]) -> list[Cookie]:
        """Drop identity cookies unless the response came from a login URL."""
        if self.config.is_login_url(url.host, str(url)):
            return cookies

        kept = [c for c in cookies if not self.config.is_identity_cookie(c.name)]
        if len(kept) != len(cookies):
            logger.info(
                "identity_cookies_ignored",
                host=url.host,
                names=sorted(
                    {c.name for c in cookies if self.config.is_identity_cookie(c.name)}
                ),
            )
        return kept

    def _copy_login_cookies(self, cookies: list[Cookie]) -> list[Cookie]:
        """Append a sibling-domain copy of each identity cookie.

        Copies carry only name, value, domain and path; every other
        attribute takes its default, so they are session cookies.
        """
        result = list(cookies)
        for cookie in cookies:
            if not self.config.is_identity_cookie(cookie.name):
                continue
            for sibling in self.config.sibling_domains:
                if self.config.covers_sibling(cookie.domain, sibling):
                    continue
                result.append(
                    Cookie(
                        name=cookie.name,
                        value=cookie.value,
                        domain=sibling,
                        path=cookie.path,
                    )
                )
        if len(result) != len(cookies):
            logger.debug("identity_cookies_replicated", copies=len(result) - len(cookies))
        return result
