"""Runtime settings for secrypt, read from ``SECRYPT_*`` environment variables.

CLI flags override whatever is loaded here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import getpass
import logging
import os

from .exceptions import ConfigError

CUSTODIAN_KEYRING = "keyring"
CUSTODIAN_PASSPHRASE = "passphrase"
CUSTODIANS = (CUSTODIAN_KEYRING, CUSTODIAN_PASSPHRASE)


@dataclass
class Settings:
    custodian: str = CUSTODIAN_KEYRING
    keyring_service: str = "secrypt"
    keyring_account: str = ""
    passphrase: Optional[str] = None
    auth_reuse_seconds: float = 0.0
    log_level: int = logging.WARNING


def _default_account() -> str:
    try:
        return getpass.getuser()
    except Exception:
        # getuser() raises when no login name can be found (e.g. in containers)
        return "default"


def _parse_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ConfigError(f"SECRYPT_LOG_LEVEL: unknown logging level {value!r}")
    return level


def _parse_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as e:
        raise ConfigError(f"SECRYPT_AUTH_REUSE_SECONDS: not a number: {value!r}") from e
    if seconds < 0:
        raise ConfigError("SECRYPT_AUTH_REUSE_SECONDS must not be negative")
    return seconds


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from ``environ`` (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    custodian = env.get("SECRYPT_CUSTODIAN", CUSTODIAN_KEYRING).strip().lower()
    if custodian not in CUSTODIANS:
        raise ConfigError(
            f"SECRYPT_CUSTODIAN must be one of {', '.join(CUSTODIANS)}, got {custodian!r}"
        )

    settings = Settings(
        custodian=custodian,
        keyring_service=env.get("SECRYPT_KEYRING_SERVICE") or "secrypt",
        keyring_account=env.get("SECRYPT_KEYRING_ACCOUNT") or _default_account(),
        passphrase=env.get("SECRYPT_PASSPHRASE") or None,
    )
    if "SECRYPT_AUTH_REUSE_SECONDS" in env:
        settings.auth_reuse_seconds = _parse_seconds(env["SECRYPT_AUTH_REUSE_SECONDS"])
    if "SECRYPT_LOG_LEVEL" in env:
        settings.log_level = _parse_level(env["SECRYPT_LOG_LEVEL"])
    return settings
