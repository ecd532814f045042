"""Pydantic configuration models for the persistent cookie jar."""
from __future__ import annotations

import os
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

from persistentjar.cookie import domain_match

logger = structlog.get_logger(__name__)


class JarConfig(BaseModel):
    """Identity-cookie policy applied by PersistentCookieJar."""

    identity_cookie_names: frozenset[str] = frozenset(
        {"XXT_TICKET", "XXT_ID", "_XSID_", "_SSO_STATE_TICKET"}
    )
    login_hosts: frozenset[str] = frozenset(
        {"login.xxt.cn", "login.hbjxt.cn", "login.lexue.cn", "ai.xxt.cn"}
    )
    login_url_markers: tuple[str, ...] = ("rest.xxt.cn/login",)
    sibling_domains: tuple[str, ...] = ("xxt.cn", "hbjxt.cn", "lexue.cn", "xinzx.cn")
    persist_session_cookies: bool = True
    strict_sibling_match: bool = False

    @field_validator("login_hosts", "sibling_domains")
    @classmethod
    def normalise_hosts(
        cls, v: frozenset[str] | tuple[str, ...]
    ) -> frozenset[str] | tuple[str, ...]:
        """Lower-case hosts and strip leading dots."""
        return type(v)(h.strip().lower().lstrip(".") for h in v)

    def is_identity_cookie(self, name: str | None) -> bool:
        """Return True if name is one of the protected identity cookie names."""
        return bool(name) and name in self.identity_cookie_names

    def covers_sibling(self, domain: str | None, sibling: str) -> bool:
        """Return True if a cookie on domain needs no copy for sibling.

        By default any domain ending with the sibling string counts. With
        strict_sibling_match the suffix must fall on a label boundary, so
        "myxxt.cn" no longer covers "xxt.cn".
        """
        if not domain:
            return False
        if self.strict_sibling_match:
            return domain_match(domain, sibling)
        return domain.endswith(sibling)

    def is_login_url(self, host: str, url: str) -> bool:
        """Return True if a response from this URL may set identity cookies."""
        if host and host.lower() in self.login_hosts:
            return True
        return any(marker in url for marker in self.login_url_markers)


class Config(BaseModel):
    """Top-level configuration: where cookies live and which policy applies."""

    cookie_file: str = Field(
        default_factory=lambda: os.getenv("COOKIE_FILE", "/cookies/cookies.json")
    )
    jar: JarConfig = Field(default_factory=JarConfig)

    @field_validator("cookie_file")
    @classmethod
    def cookie_file_must_be_nonempty(cls, v: str) -> str:
        """Validate that a cookie file path is configured."""
        if not v.strip():
            raise ValueError("cookie_file must not be empty")
        return v


def load_config(path: str | None = None) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to the YAML file. Defaults to CONFIG_PATH env, then
            /config/cookiejar.yaml.

    Returns:
        Validated Config instance.
    """
    config_path = Path(path or os.getenv("CONFIG_PATH", "/config/cookiejar.yaml"))
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        raw = yaml.safe_load(f) or {}

    config = Config(**raw)
    logger.info(
        "config_loaded",
        path=str(config_path),
        cookie_file=config.cookie_file,
        sibling_domains=list(config.jar.sibling_domains),
    )
    return config
