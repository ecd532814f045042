"""Glue between PersistentCookieJar and an httpx.Client.

Set-Cookie grammar is left to :mod:`http.cookies`; this module only turns
its morsels into :class:`Cookie` values and wires the jar into httpx event
hooks.
"""
from __future__ import annotations

import email.utils
from collections.abc import Iterable
from datetime import UTC, datetime
from http.cookies import CookieError, SimpleCookie

import httpx
import structlog

from persistentjar.cookie import (
    MAX_DATE,
    Cookie,
    domain_match,
    is_public_suffix,
    now_millis,
)
from persistentjar.jar import ClearableCookieJar

logger = structlog.get_logger(__name__)


def default_path(request_path: str) -> str:
    """Compute the RFC 6265 default-path for a request path."""
    if not request_path.startswith("/") or request_path.count("/") == 1:
        return "/"
    return request_path[: request_path.rfind("/")]


def parse_expires(raw: str) -> int | None:
    """Parse an Expires attribute into epoch milliseconds.

    Dates past the end of year 9999 are capped at MAX_DATE. Dates without a
    zone are read as UTC.

    Returns:
        Milliseconds since the epoch, or None if raw is not a date.
    """
    parsed = email.utils.parsedate_tz(raw)
    if parsed is None:
        return None
    if parsed[0] > 9999:
        return MAX_DATE
    try:
        dt = datetime(*parsed[:6], tzinfo=UTC)
    except ValueError:
        return None
    offset_ms = (parsed[9] or 0) * 1000
    return min(int(dt.timestamp() * 1000) - offset_ms, MAX_DATE)


def cookie_from_set_cookie(
    header: str,
    url: httpx.URL | str,
    now_ms: int | None = None,
) -> Cookie | None:
    """Convert one Set-Cookie header into a Cookie.

    Args:
        header: Raw Set-Cookie header value.
        url: URL of the response carrying the header.
        now_ms: Reference time for Max-Age. Defaults to now.

    Returns:
        The cookie, or None if the header is malformed or names a domain
        the response host may not set cookies for.
    """
    url = httpx.URL(url)
    host = url.host.lower()
    if now_ms is None:
        now_ms = now_millis()

    parsed = SimpleCookie()
    try:
        parsed.load(header)
    except CookieError as exc:
        logger.warning("set_cookie_unparseable", host=host, error=str(exc))
        return None
    if not parsed:
        logger.warning("set_cookie_unparseable", host=host)
        return None

    name, morsel = next(iter(parsed.items()))

    domain = morsel["domain"].strip().lower().lstrip(".")
    host_only = not domain
    if host_only:
        domain = host
    elif domain != host and (
        not domain_match(host, domain) or is_public_suffix(domain)
    ):
        logger.info("set_cookie_domain_rejected", host=host, domain=domain, name=name)
        return None

    path = morsel["path"]
    if not path.startswith("/"):
        path = default_path(url.path)

    expires_at = None
    if morsel["max-age"]:
        try:
            max_age = int(morsel["max-age"])
        except ValueError:
            max_age = None
        if max_age is not None:
            expires_at = 0 if max_age <= 0 else now_ms + max_age * 1000
    if expires_at is None and morsel["expires"]:
        expires_at = parse_expires(morsel["expires"])

    fields = {}
    if expires_at is not None:
        fields.update(expires_at=expires_at, persistent=True)

    return Cookie(
        name=name,
        value=morsel.value,
        domain=domain,
        path=path,
        secure=bool(morsel["secure"]),
        http_only=bool(morsel["httponly"]),
        host_only=host_only,
        **fields,
    )


def format_cookie_header(cookies: Iterable[Cookie]) -> str:
    """Format cookies into a Cookie header value.

    Args:
        cookies: Cookies to send.

    Returns:
        Semicolon-separated name=value string.
    """
    return "; ".join(f"{c.name}={c.value}" for c in cookies)


def install(client: httpx.Client, jar: ClearableCookieJar) -> httpx.Client:
    """Route every request and response of client through jar.

    The request hook replaces any Cookie header httpx built from its own
    cookie store, so the jar is the single source of cookies.

    Args:
        client: A synchronous httpx client.
        jar: The jar to load cookies from and save cookies into.

    Returns:
        The same client, for chaining.
    """

    def on_request(request: httpx.Request) -> None:
        cookies = jar.load_for_request(request.url)
        if cookies:
            request.headers["Cookie"] = format_cookie_header(cookies)
        else:
            request.headers.pop("Cookie", None)

    def on_response(response: httpx.Response) -> None:
        url = response.request.url
        cookies = []
        for header in response.headers.get_list("set-cookie"):
            cookie = cookie_from_set_cookie(header, url)
            if cookie is not None:
                cookies.append(cookie)
        if cookies:
            jar.save_from_response(url, cookies)

    hooks = client.event_hooks
    hooks["request"].append(on_request)
    hooks["response"].append(on_response)
    client.event_hooks = hooks
    logger.debug("cookie_jar_installed")
    return client
