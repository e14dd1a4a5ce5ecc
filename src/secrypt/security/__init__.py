"""Security primitives for secrypt.

This package provides the building blocks of the envelope protocol:
- P-256 key agreement over ephemeral and custodian-held keys
- HKDF-SHA256 derivation of the envelope key (with an XOR-combined salt)
- ChaCha20-Poly1305 sealing into a single combined blob
- software key custodians and the explicit authentication context they use
"""

from . import aead
from .kdf import xor_combine, derive_symmetric_key, PROTOCOL_INFO
from .agreement import (
    PrivateKeyForAgreement,
    EphemeralPrivateKey,
    CustodianPrivateKey,
    agree,
    load_public_key,
    encode_public_key,
)
from .auth import AuthenticationContext
from .custodian import (
    AccessPolicy,
    KeyHandle,
    Custodian,
    KeyringCustodian,
    PassphraseCustodian,
)

__all__ = [
    "aead",
    "xor_combine",
    "derive_symmetric_key",
    "PROTOCOL_INFO",
    "PrivateKeyForAgreement",
    "EphemeralPrivateKey",
    "CustodianPrivateKey",
    "agree",
    "load_public_key",
    "encode_public_key",
    "AuthenticationContext",
    "AccessPolicy",
    "KeyHandle",
    "Custodian",
    "KeyringCustodian",
    "PassphraseCustodian",
]
