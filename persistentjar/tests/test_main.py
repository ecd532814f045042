"""Tests for the maintenance command line."""
from __future__ import annotations

import pytest

from persistentjar.cookie import Cookie, now_millis
from persistentjar.main import describe_cookie, main
from persistentjar.persistence import JsonFileCookiePersistor

HOUR_MS = 3600 * 1000


@pytest.fixture()
def cookie_file(tmp_path):
    return tmp_path / "cookies.json"


@pytest.fixture()
def config_path(tmp_path, cookie_file):
    path = tmp_path / "cookiejar.yaml"
    path.write_text(f"cookie_file: {cookie_file}\n")
    return str(path)


@pytest.fixture()
def stored(cookie_file):
    persistor = JsonFileCookiePersistor(cookie_file)
    persistor.save_all([
        Cookie(name="XXT_TICKET", value="t", domain="login.xxt.cn"),
        Cookie(name="pref", value="p", domain="lexue.cn",
               expires_at=now_millis() + HOUR_MS, persistent=True),
        Cookie(name="old", value="o", domain="xxt.cn",
               expires_at=now_millis() - HOUR_MS, persistent=True),
    ])
    return persistor


def test_describe_session_cookie():
    line = describe_cookie(Cookie(name="a", value="b", domain="xxt.cn"))
    assert line == "a  domain=xxt.cn path=/ expires=session"

def test_describe_persistent_cookie():
    line = describe_cookie(Cookie(name="a", value="b", domain="xxt.cn", expires_at=0))
    assert line.endswith("expires=1970-01-01T00:00:00Z")

def test_list_groups_by_registered_domain(config_path, stored, capsys):
    assert main(["--config", config_path, "list"]) == 0
    out = capsys.readouterr().out
    assert "xxt.cn:\n  XXT_TICKET  domain=login.xxt.cn" in out
    assert "lexue.cn:\n  pref  domain=lexue.cn" in out

def test_prune_removes_expired(config_path, stored, capsys):
    assert main(["--config", config_path, "prune"]) == 0
    assert "removed 1 expired cookies" in capsys.readouterr().out
    assert sorted(c.name for c in stored.load_all()) == ["XXT_TICKET", "pref"]

def test_clear_wipes_file(config_path, stored, cookie_file):
    assert main(["--config", config_path, "clear"]) == 0
    assert not cookie_file.exists()

def test_unknown_command_exits(config_path):
    with pytest.raises(SystemExit):
        main(["--config", config_path, "explode"])
