"""P-256 ECDH behind a one-method protocol.

Two kinds of private key can take part in an agreement:

- EphemeralPrivateKey: an in-memory key that lives for one seal call
- CustodianPrivateKey: a handle that only the custodian can use; every
  agreement goes through the custodian and its authentication context

Callers (the seal/open pipeline, the key deriver) only see the
PrivateKeyForAgreement protocol and never learn which kind produced a secret.
Public keys travel as 33-byte SEC1 compressed points.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from secrypt.core.exceptions import KeyAgreementError

if TYPE_CHECKING:
    from secrypt.security.auth import AuthenticationContext
    from secrypt.security.custodian import Custodian, KeyHandle

logger = logging.getLogger(__name__)

CURVE = ec.SECP256R1()
PUBLIC_KEY_LEN = 33


def load_public_key(data: bytes) -> ec.EllipticCurvePublicKey:
    """Parse a compressed P-256 point, raising KeyAgreementError if invalid."""
    if not isinstance(data, (bytes, bytearray)) or len(data) != PUBLIC_KEY_LEN or data[0] not in (2, 3):
        raise KeyAgreementError("peer public key is not a compressed P-256 point")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes(data))
    except ValueError as e:
        raise KeyAgreementError("peer public key is not on the P-256 curve") from e


def encode_public_key(key: ec.EllipticCurvePublicKey) -> bytes:
    return key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)


def exchange(private_key: ec.EllipticCurvePrivateKey, peer_public_key: bytes) -> bytes:
    """Raw ECDH between a loaded private key and encoded peer public key."""
    peer = load_public_key(peer_public_key)
    try:
        return private_key.exchange(ec.ECDH(), peer)
    except ValueError as e:
        raise KeyAgreementError(f"ECDH failed: {e}") from e


class PrivateKeyForAgreement(Protocol):
    @property
    def public_key(self) -> bytes: ...

    def agree(self, peer_public_key: bytes) -> bytes: ...


class EphemeralPrivateKey:
    """In-memory P-256 key; discard it once the agreement is done."""

    def __init__(self, key: ec.EllipticCurvePrivateKey):
        self._key = key
        self._public_key = encode_public_key(key.public_key())

    @classmethod
    def generate(cls) -> "EphemeralPrivateKey":
        return cls(ec.generate_private_key(CURVE))

    @property
    def public_key(self) -> bytes:
        return self._public_key

    def agree(self, peer_public_key: bytes) -> bytes:
        return exchange(self._key, peer_public_key)

    def __repr__(self) -> str:
        return f"EphemeralPrivateKey(public_key={self._public_key.hex()})"


class CustodianPrivateKey:
    """A custodian handle paired with the context that authorizes its use."""

    def __init__(self, custodian: "Custodian", handle: "KeyHandle", context: "AuthenticationContext"):
        self.custodian = custodian
        self.handle = handle
        self.context = context

    @property
    def public_key(self) -> bytes:
        return self.custodian.public_key(self.handle)

    def agree(self, peer_public_key: bytes) -> bytes:
        # validate before the custodian possibly prompts the user
        load_public_key(peer_public_key)
        return self.custodian.agree(self.handle, peer_public_key, self.context)

    def __repr__(self) -> str:
        return f"CustodianPrivateKey(custodian={type(self.custodian).__name__})"


def agree(private_key: PrivateKeyForAgreement, peer_public_key: bytes) -> bytes:
    """Compute the ECDH shared secret; raises KeyAgreementError on failure."""
    secret = private_key.agree(peer_public_key)
    logger.debug("key agreement via %s produced %d-byte secret", type(private_key).__name__, len(secret))
    return secret
