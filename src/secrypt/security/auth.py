"""Explicit authentication context for custodian key operations.

An AuthenticationContext is handed to every custodian call. It runs the local
presence check (a ``confirm`` callback) or asks for a passphrase (a
``passphrase_prompt`` callback), and can remember a successful answer for a
short reuse window so that one seal or open asks the user at most once.

There is no module-level default context: callers build one and pass it in.
"""
from __future__ import annotations

import hmac
import logging
import time
from typing import Callable, Optional, Union

from secrypt.core.exceptions import AuthenticationDeniedError

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]
PassphrasePrompt = Callable[[str], Union[bytes, str]]


class AuthenticationContext:
    def __init__(
        self,
        confirm: Optional[ConfirmCallback] = None,
        passphrase_prompt: Optional[PassphrasePrompt] = None,
        reuse_seconds: float = 0,
    ):
        if reuse_seconds < 0:
            raise ValueError("reuse_seconds must not be negative")
        self._confirm = confirm
        self._passphrase_prompt = passphrase_prompt
        self.reuse_seconds = float(reuse_seconds)
        self._confirmed_until: Optional[float] = None
        self._passphrase: Optional[bytearray] = None
        self._passphrase_until: Optional[float] = None

    def _still_valid(self, until: Optional[float]) -> bool:
        return until is not None and time.monotonic() < until

    def evaluate(self, reason: str) -> None:
        """Run the presence check or raise AuthenticationDeniedError.

        A previous success inside the reuse window is accepted without
        asking again.
        """
        if self._still_valid(self._confirmed_until):
            logger.debug("presence check reused for: %s", reason)
            return
        if self._confirm is None:
            raise AuthenticationDeniedError("no presence check is available in this context")
        if not self._confirm(reason):
            self._confirmed_until = None
            raise AuthenticationDeniedError(f"presence check was denied: {reason}")
        logger.debug("presence check passed for: %s", reason)
        if self.reuse_seconds > 0:
            self._confirmed_until = time.monotonic() + self.reuse_seconds

    def passphrase(self, reason: str) -> bytes:
        """Return the passphrase for ``reason``, prompting unless cached."""
        if self._passphrase is not None and self._still_valid(self._passphrase_until):
            return bytes(self._passphrase)
        self._forget_passphrase()
        answer = self._ask(reason)
        self._remember(answer)
        return answer

    def new_passphrase(self, reason: str) -> bytes:
        """Ask for a passphrase that will protect a new key, twice.

        A cached passphrase is never reused here. Both answers must match or
        AuthenticationDeniedError is raised.
        """
        self._forget_passphrase()
        first = self._ask(reason)
        second = self._ask(f"{reason} (repeat to confirm)")
        if not hmac.compare_digest(first, second):
            raise AuthenticationDeniedError("passphrases do not match")
        self._remember(first)
        return first

    def _ask(self, reason: str) -> bytes:
        if self._passphrase_prompt is None:
            raise AuthenticationDeniedError("no passphrase prompt is available in this context")
        answer = self._passphrase_prompt(reason)
        if isinstance(answer, str):
            answer = answer.encode("utf-8")
        if not answer:
            raise AuthenticationDeniedError(f"no passphrase given: {reason}")
        return bytes(answer)

    def _remember(self, answer: bytes) -> None:
        if self.reuse_seconds > 0:
            self._passphrase = bytearray(answer)
            self._passphrase_until = time.monotonic() + self.reuse_seconds

    def _forget_passphrase(self) -> None:
        try:
            if self._passphrase is not None:
                # best-effort overwrite of the cached copy
                for i in range(len(self._passphrase)):
                    self._passphrase[i] = 0
        finally:
            self._passphrase = None
            self._passphrase_until = None

    def invalidate(self) -> None:
        """Drop any remembered authentication so the next call asks again."""
        self._forget_passphrase()
        self._confirmed_until = None
