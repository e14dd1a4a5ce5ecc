"""
Seal and open: the two end-to-end operations of secrypt.

seal:  generate custodian key -> generate ephemeral key -> agree -> derive
       -> AEAD seal -> encode
open:  decode -> agree -> derive -> AEAD open

Both are linear. The first failing step raises and nothing is returned; there
are no retries at this layer. A denied authentication is retried by calling
the whole operation again.
"""

from __future__ import annotations

import logging

from secrypt.security import aead
from secrypt.security.agreement import CustodianPrivateKey, EphemeralPrivateKey, agree
from secrypt.security.auth import AuthenticationContext
from secrypt.security.custodian import AccessPolicy, Custodian, key_fingerprint
from secrypt.security.kdf import derive_symmetric_key
from . import envelope as envelope_codec
from .envelope import Envelope

logger = logging.getLogger(__name__)


def seal(plaintext: bytes, custodian: Custodian, context: AuthenticationContext) -> bytes:
    """Encrypt ``plaintext`` to a fresh custodian key and return envelope bytes."""
    handle, custodian_public_key = custodian.generate_protected_key(
        context, policy=AccessPolicy.USER_PRESENCE
    )
    ephemeral = EphemeralPrivateKey.generate()

    shared_secret = agree(ephemeral, custodian_public_key)
    key = derive_symmetric_key(shared_secret, ephemeral.public_key, custodian_public_key)
    sealed_box = aead.seal(plaintext, key)

    data = envelope_codec.encode(
        Envelope(
            ephemeral_public_key=ephemeral.public_key,
            private_key=handle,
            sealed_box=sealed_box,
        )
    )
    logger.debug(
        "sealed %d bytes to custodian key %s (envelope %d bytes)",
        len(plaintext),
        key_fingerprint(custodian_public_key),
        len(data),
    )
    return data


def open_envelope(data: bytes, custodian: Custodian, context: AuthenticationContext) -> bytes:
    """Recover the plaintext from envelope bytes.

    Raises DecodeError, KeyAgreementError or AuthenticationError; plaintext is
    only returned after the AEAD tag verified.
    """
    env = envelope_codec.decode(data)
    handle = custodian.reconstruct_handle(env.private_key.data)
    private_key = CustodianPrivateKey(custodian, handle, context)
    custodian_public_key = private_key.public_key

    shared_secret = agree(private_key, env.ephemeral_public_key)
    key = derive_symmetric_key(shared_secret, env.ephemeral_public_key, custodian_public_key)
    plaintext = aead.open(env.sealed_box, key)

    logger.debug(
        "opened envelope for custodian key %s (%d bytes)",
        key_fingerprint(custodian_public_key),
        len(plaintext),
    )
    return plaintext
