"""Immutable cookie value type with RFC 6265 request matching."""
from __future__ import annotations

import ipaddress
import time

import httpx
import tldextract
from pydantic import BaseModel, ConfigDict, field_validator

# Expiry used for session cookies: 9999-12-31T23:59:59.999Z in milliseconds.
MAX_DATE = 253402300799999

# Offline extractor: use the public suffix snapshot bundled with tldextract.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def is_ip_address(host: str) -> bool:
    """Return True if host is a literal IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def domain_match(host: str, domain: str) -> bool:
    """Implements domain matching adhering to RFC 6265 section 5.1.3."""
    if host == domain:
        return True
    return (
        host.endswith(domain)
        and host[: -len(domain)].endswith(".")
        and not is_ip_address(host)
    )


def is_public_suffix(domain: str) -> bool:
    """Return True if domain is a public suffix such as "cn" or "com.cn"."""
    extracted = _extract(domain)
    return not extracted.domain and bool(extracted.suffix)


def registered_domain(domain: str) -> str:
    """Extract the registered domain, e.g. "login.xxt.cn" -> "xxt.cn".

    Hosts without a recognisable suffix, such as "localhost", are returned
    unchanged.
    """
    extracted = _extract(domain)
    if not extracted.domain or not extracted.suffix:
        return domain
    return f"{extracted.domain}.{extracted.suffix}"


def path_match(request_path: str, cookie_path: str) -> bool:
    """Implements path matching adhering to RFC 6265 section 5.1.4."""
    if not request_path.startswith("/"):
        request_path = "/"
    if request_path == cookie_path:
        return True
    if not request_path.startswith(cookie_path):
        return False
    if cookie_path.endswith("/"):
        return True
    return request_path[len(cookie_path)] == "/"


CookieKey = tuple[str, str, str]


class Cookie(BaseModel):
    """A single cookie. Instances are immutable and hashable.

    Two cookies with the same ``key`` (name, domain, path) denote the same
    slot in a cache or persistor; storing one replaces the other.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    domain: str
    path: str = "/"
    expires_at: int = MAX_DATE
    persistent: bool = False
    secure: bool = False
    http_only: bool = False
    host_only: bool = False

    @field_validator("domain")
    @classmethod
    def normalise_domain(cls, v: str) -> str:
        """Lower-case the domain and strip a leading dot."""
        return v.strip().lower().lstrip(".")

    @field_validator("path")
    @classmethod
    def default_path(cls, v: str) -> str:
        """Paths that do not start with a slash fall back to the root."""
        return v if v.startswith("/") else "/"

    @property
    def key(self) -> CookieKey:
        return (self.name, self.domain, self.path)

    def is_expired(self, now_ms: int | None = None) -> bool:
        """Return True if the cookie expired strictly before ``now_ms``."""
        if now_ms is None:
            now_ms = now_millis()
        return self.expires_at < now_ms

    def matches(self, url: httpx.URL | str) -> bool:
        """Return True if this cookie should be sent with a request to url."""
        url = httpx.URL(url)
        host = url.host.lower()

        if self.host_only:
            if host != self.domain:
                return False
        elif not domain_match(host, self.domain):
            return False

        if not path_match(url.path, self.path):
            return False

        return not self.secure or url.scheme == "https"
