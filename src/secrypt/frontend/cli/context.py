"""Small helper to build the custodian and authentication context for the CLI."""

from __future__ import annotations

from dataclasses import dataclass
import getpass
import sys

from secrypt.core.config import CUSTODIAN_PASSPHRASE, Settings
from secrypt.security.auth import AuthenticationContext
from secrypt.security.custodian import Custodian, KeyringCustodian, PassphraseCustodian


@dataclass
class CliContext:
    """Container for runtime objects a seal/open run needs."""

    settings: Settings
    custodian: Custodian
    auth: AuthenticationContext


def confirm_on_terminal(reason: str) -> bool:
    # Presence check: an interactive "yes" on the controlling terminal.
    if not sys.stdin.isatty():
        return False
    sys.stderr.write(f"secrypt: {reason}. Allow? [y/N] ")
    sys.stderr.flush()
    answer = sys.stdin.readline().strip().lower()
    return answer in ("y", "yes")


def build_context(settings: Settings) -> CliContext:
    """
    Build the custodian named by ``settings`` and an AuthenticationContext.

    - ``keyring``: KeyringCustodian under (keyring_service, keyring_account);
      presence is confirmed on the terminal.
    - ``passphrase``: PassphraseCustodian; the passphrase comes from
      ``SECRYPT_PASSPHRASE`` when set, otherwise from a getpass prompt.
    """
    if settings.custodian == CUSTODIAN_PASSPHRASE:
        custodian: Custodian = PassphraseCustodian()
    else:
        custodian = KeyringCustodian(service=settings.keyring_service, account=settings.keyring_account)

    if settings.passphrase is not None:
        preset = settings.passphrase

        def prompt(reason: str) -> str:
            return preset
    else:
        def prompt(reason: str) -> str:
            return getpass.getpass(f"secrypt: {reason}: ")

    auth = AuthenticationContext(
        confirm=confirm_on_terminal,
        passphrase_prompt=prompt,
        reuse_seconds=settings.auth_reuse_seconds,
    )
    return CliContext(settings=settings, custodian=custodian, auth=auth)
