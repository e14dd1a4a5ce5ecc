"""ChaCha20-Poly1305 sealing with a combined blob.

Blob layout: 12-byte nonce || ciphertext || 16-byte tag. This matches the
"combined" representation other ChaChaPoly implementations emit, so the blob
can be carried around as a single opaque byte string.
"""
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from secrypt.core.exceptions import AuthenticationError


NONCE_LEN = 12
TAG_LEN = 16
KEY_LEN = 32


def _cipher(key: bytes) -> ChaCha20Poly1305:
    if len(key) != KEY_LEN:
        raise ValueError(f"ChaCha20-Poly1305 key must be {KEY_LEN} bytes, got {len(key)}")
    return ChaCha20Poly1305(key)


def seal(plaintext: bytes, key: bytes) -> bytes:
    aead = _cipher(key)
    nonce = os.urandom(NONCE_LEN)
    return nonce + aead.encrypt(nonce, plaintext, None)


def open(blob: bytes, key: bytes) -> bytes:
    """Verify and decrypt a combined blob.

    Raises AuthenticationError for a bad tag and for a blob too short to
    hold nonce and tag; nothing is returned unless the tag verified.
    """
    aead = _cipher(key)
    if len(blob) < NONCE_LEN + TAG_LEN:
        raise AuthenticationError()
    nonce, ct = blob[:NONCE_LEN], blob[NONCE_LEN:]
    try:
        return aead.decrypt(nonce, ct, None)
    except InvalidTag as e:
        raise AuthenticationError() from e
