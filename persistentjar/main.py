"""Command-line entry point to inspect or maintain a persisted cookie file.

Usage:
    python -m persistentjar.main [--config PATH] {list,prune,clear}
"""
from __future__ import annotations

import argparse
import logging
import os
from collections import defaultdict
from datetime import UTC, datetime

import structlog

from persistentjar.cache import SetCookieCache
from persistentjar.config import Config, load_config
from persistentjar.cookie import MAX_DATE, Cookie, registered_domain
from persistentjar.jar import PersistentCookieJar
from persistentjar.persistence import JsonFileCookiePersistor

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        getattr(logging, os.getenv("LOG_LEVEL", "INFO"))
    )
)

logger = structlog.get_logger(__name__)


def describe_cookie(cookie: Cookie) -> str:
    """Render one cookie as a single line; session cookies show "session"."""
    if cookie.expires_at >= MAX_DATE:
        expiry = "session"
    else:
        expiry = (
            datetime.fromtimestamp(cookie.expires_at / 1000, tz=UTC)
            .isoformat()
            .replace("+00:00", "Z")
        )
    return f"{cookie.name}  domain={cookie.domain} path={cookie.path} expires={expiry}"


def open_jar(config: Config) -> PersistentCookieJar:
    """Build a jar over the configured cookie file."""
    return PersistentCookieJar(
        SetCookieCache(),
        JsonFileCookiePersistor(config.cookie_file),
        config.jar,
    )


def list_cookies(jar: PersistentCookieJar) -> list[str]:
    """Render the persisted cookies, grouped by registered domain."""
    groups: dict[str, list[Cookie]] = defaultdict(list)
    for cookie in jar.persistor.load_all():
        groups[registered_domain(cookie.domain)].append(cookie)

    lines = []
    for group in sorted(groups):
        lines.append(f"{group}:")
        for cookie in sorted(groups[group], key=lambda c: c.key):
            lines.append(f"  {describe_cookie(cookie)}")
    return lines


def prune(jar: PersistentCookieJar) -> int:
    """Evict expired cookies from the store and return how many were removed."""
    before = len(jar.persistor.load_all())
    # Any URL will do: eviction happens before matching.
    jar.load_for_request("http://localhost/")
    removed = before - len(jar.persistor.load_all())
    logger.info("cookies_pruned", removed=removed)
    return removed


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run one maintenance command."""
    parser = argparse.ArgumentParser(prog="persistentjar", description=__doc__.splitlines()[0])
    parser.add_argument("--config", help="YAML config path (default: CONFIG_PATH env)")
    parser.add_argument("command", choices=["list", "prune", "clear"])
    args = parser.parse_args(argv)

    config = load_config(args.config)
    jar = open_jar(config)

    if args.command == "list":
        for line in list_cookies(jar):
            print(line)
    elif args.command == "prune":
        print(f"removed {prune(jar)} expired cookies")
    else:
        jar.clear()
        print(f"cleared {config.cookie_file}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
