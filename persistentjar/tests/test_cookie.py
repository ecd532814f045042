"""Tests for the Cookie value type and RFC 6265 matching."""
from __future__ import annotations

import pydantic
import pytest

from persistentjar.cookie import (
    MAX_DATE,
    Cookie,
    domain_match,
    is_public_suffix,
    now_millis,
    path_match,
    registered_domain,
)


def _cookie(**kwargs) -> Cookie:
    fields = {"name": "s", "value": "v", "domain": "xxt.cn"}
    fields.update(kwargs)
    return Cookie(**fields)


# --- value semantics ---

def test_defaults_describe_session_cookie():
    c = _cookie()
    assert c.path == "/"
    assert c.expires_at == MAX_DATE
    assert c.persistent is False
    assert c.host_only is False

def test_domain_normalised():
    assert _cookie(domain=".Login.XXT.cn").domain == "login.xxt.cn"

def test_relative_path_falls_back_to_root():
    assert _cookie(path="app").path == "/"

def test_key_is_name_domain_path():
    assert _cookie(path="/a").key == ("s", "xxt.cn", "/a")

def test_immutable():
    c = _cookie()
    with pytest.raises(pydantic.ValidationError):
        c.value = "other"

def test_hashable_and_equal_by_value():
    assert _cookie() == _cookie()
    assert len({_cookie(), _cookie()}) == 1

def test_is_expired():
    now = now_millis()
    assert _cookie(expires_at=now - 1).is_expired(now)
    assert not _cookie(expires_at=now).is_expired(now)
    assert not _cookie().is_expired()


# --- domain_match / path_match ---

@pytest.mark.parametrize(
    ("host", "domain", "expected"),
    [
        ("xxt.cn", "xxt.cn", True),
        ("login.xxt.cn", "xxt.cn", True),
        ("a.b.xxt.cn", "xxt.cn", True),
        ("hbjxt.cn", "xxt.cn", False),
        ("xxt.cn", "login.xxt.cn", False),
        ("10.0.0.1", "0.0.1", False),
    ],
)
def test_domain_match(host, domain, expected):
    assert domain_match(host, domain) is expected


@pytest.mark.parametrize(
    ("request_path", "cookie_path", "expected"),
    [
        ("/", "/", True),
        ("/app/page", "/", True),
        ("/app", "/app", True),
        ("/app/page", "/app", True),
        ("/app/page", "/app/", True),
        ("/application", "/app", False),
        ("/other", "/app", False),
        ("", "/", True),
    ],
)
def test_path_match(request_path, cookie_path, expected):
    assert path_match(request_path, cookie_path) is expected


# --- matches(url) ---

def test_matches_subdomain():
    assert _cookie().matches("https://www.xxt.cn/home")

def test_host_only_requires_exact_host():
    c = _cookie(domain="login.xxt.cn", host_only=True)
    assert c.matches("https://login.xxt.cn/")
    assert not c.matches("https://a.login.xxt.cn/")

def test_path_restricts_match():
    c = _cookie(path="/api")
    assert c.matches("https://xxt.cn/api/users")
    assert not c.matches("https://xxt.cn/web")

def test_secure_only_over_https():
    c = _cookie(secure=True)
    assert c.matches("https://xxt.cn/")
    assert not c.matches("http://xxt.cn/")

def test_host_case_insensitive():
    assert _cookie().matches("https://WWW.XXT.CN/")

def test_other_domain_does_not_match():
    assert not _cookie().matches("https://lexue.cn/")


# --- public suffix helpers ---

def test_public_suffix():
    assert is_public_suffix("cn")
    assert is_public_suffix("com.cn")
    assert not is_public_suffix("xxt.cn")

def test_registered_domain():
    assert registered_domain("login.xxt.cn") == "xxt.cn"
    assert registered_domain("localhost") == "localhost"
