"""
Envelope: the only thing secrypt writes to disk.

An envelope is a CBOR map holding everything needed to repeat the key
agreement on open:

    {
        "version": 1,
        "ephemeralPublicKey": bstr,   # compressed P-256 point
        "privateKey": bstr,           # custodian key handle
        "sealedBox": bstr,            # nonce || ciphertext || tag
    }

Keys are written in the order above. On decode the order is irrelevant, and a
missing "version" is read as 1 so envelopes written before the field existed
still open. Decoding checks structure only: curve points and handles are
validated later, by the key agreement.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

import cbor2

from secrypt.security.custodian import KeyHandle
from .exceptions import DecodeError, DecodeErrorReason, EncodingError

ENVELOPE_VERSION = 1

VERSION_FIELD = "version"
EPHEMERAL_PUBLIC_KEY_FIELD = "ephemeralPublicKey"
PRIVATE_KEY_FIELD = "privateKey"
SEALED_BOX_FIELD = "sealedBox"

_REQUIRED_FIELDS = (
    (EPHEMERAL_PUBLIC_KEY_FIELD, DecodeErrorReason.MISSING_EPHEMERAL_PUBLIC_KEY),
    (PRIVATE_KEY_FIELD, DecodeErrorReason.MISSING_PRIVATE_KEY),
    (SEALED_BOX_FIELD, DecodeErrorReason.MISSING_SEALED_BOX),
)


@dataclass(frozen=True)
class Envelope:
    ephemeral_public_key: bytes
    private_key: KeyHandle
    sealed_box: bytes


def encode(envelope: Envelope) -> bytes:
    """Serialize ``envelope`` to canonical CBOR bytes."""
    if not isinstance(envelope.private_key, KeyHandle):
        raise EncodingError("privateKey must be a KeyHandle")
    fields = (
        (EPHEMERAL_PUBLIC_KEY_FIELD, envelope.ephemeral_public_key),
        (PRIVATE_KEY_FIELD, envelope.private_key.data),
        (SEALED_BOX_FIELD, envelope.sealed_box),
    )
    body = {VERSION_FIELD: ENVELOPE_VERSION}
    for name, value in fields:
        if not isinstance(value, (bytes, bytearray)) or not value:
            raise EncodingError(f"{name} must be non-empty bytes")
        body[name] = bytes(value)
    try:
        return cbor2.dumps(body)
    except cbor2.CBOREncodeError as e:
        raise EncodingError(f"failed to encode envelope: {e}") from e


def _at_end(decoder: cbor2.CBORDecoder) -> bool:
    # read through the decoder so its own read-ahead buffer is included
    try:
        decoder.read(1)
    except cbor2.CBORDecodeEOF:
        return True
    return False


def decode(data: bytes) -> Envelope:
    """Parse envelope bytes, raising DecodeError with the failing reason.

    The input must hold exactly one CBOR item; trailing bytes are MALFORMED.
    """
    try:
        decoder = cbor2.CBORDecoder(io.BytesIO(data))
        decoded = decoder.decode()
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise DecodeError(DecodeErrorReason.MALFORMED, f"not valid CBOR: {e}") from e
    if not _at_end(decoder):
        raise DecodeError(DecodeErrorReason.MALFORMED, "trailing bytes after envelope")

    if not isinstance(decoded, dict):
        raise DecodeError(DecodeErrorReason.MALFORMED, "top-level item is not a map")

    version = decoded.get(VERSION_FIELD, ENVELOPE_VERSION)
    # bool is an int subclass; CBOR true must not pass as version 1
    if isinstance(version, bool) or version != ENVELOPE_VERSION:
        raise DecodeError(DecodeErrorReason.MALFORMED, f"unsupported envelope version {version!r}")

    values = {}
    for name, reason in _REQUIRED_FIELDS:
        value = decoded.get(name)
        if not isinstance(value, bytes) or not value:
            raise DecodeError(reason)
        values[name] = value

    return Envelope(
        ephemeral_public_key=values[EPHEMERAL_PUBLIC_KEY_FIELD],
        private_key=KeyHandle(values[PRIVATE_KEY_FIELD]),
        sealed_box=values[SEALED_BOX_FIELD],
    )
