"""
Exceptions for the secrypt core and security modules
Everything derives from SecryptError so the CLI has a single error catcher
"""

from __future__ import annotations

from enum import Enum


class SecryptError(Exception):
    # general container for errors
    pass


class ConfigError(SecryptError):
    # raised when an environment variable or flag holds an invalid value
    pass


class KeyAgreementError(SecryptError):
    # raised when ECDH cannot run: bad peer key or custodian failure
    pass


class CustodianUnavailableError(KeyAgreementError):
    # raised when the custodian's protection domain cannot be reached
    pass


class AuthenticationDeniedError(KeyAgreementError):
    # raised when the local presence check or passphrase is refused
    pass


class InvalidHandleError(KeyAgreementError):
    # raised when handle bytes do not belong to the custodian
    pass


class AuthenticationError(SecryptError):
    """AEAD tag verification failed.

    Wrong key and tampered data are deliberately not told apart.
    """

    def __init__(self, message: str = "sealed box failed authentication"):
        super().__init__(message)


class DecodeErrorReason(str, Enum):
    MISSING_EPHEMERAL_PUBLIC_KEY = "missingEphemeralPublicKey"
    MISSING_PRIVATE_KEY = "missingPrivateKey"
    MISSING_SEALED_BOX = "missingSealedBox"
    MALFORMED = "malformed"


class DecodeError(SecryptError):
    """Envelope bytes could not be turned into an Envelope."""

    def __init__(self, reason: DecodeErrorReason, detail: str | None = None):
        self.reason = reason
        message = f"envelope decode failed: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class EncodingError(SecryptError):
    # raised when an in-memory Envelope cannot be serialized (programmer error)
    pass
