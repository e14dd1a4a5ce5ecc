import os

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF


# Domain-separation label for the envelope key. Changing it breaks every
# envelope written so far.
PROTOCOL_INFO = b"se-crypt/1.0"
SYMMETRIC_KEY_LEN = 32


def xor_combine(a: bytes, b: bytes) -> bytes:
    """XOR two byte strings, keeping the tail of the longer one.

    The result is as long as the longer input. Swapping the arguments never
    changes the result, whatever the lengths.
    """
    if len(a) <= len(b):
        smaller, bigger = a, b
    else:
        smaller, bigger = b, a
    head = bytes(x ^ y for x, y in zip(smaller, bigger))
    return head + bytes(bigger[len(smaller):])


def derive_symmetric_key(
    shared_secret: bytes,
    ephemeral_public_key: bytes,
    custodian_public_key: bytes,
    info: bytes = PROTOCOL_INFO,
    length: int = SYMMETRIC_KEY_LEN,
) -> bytes:
    """
    Derive the envelope's symmetric key from an ECDH shared secret.

    HKDF-SHA256 with salt = ephemeral_public_key XOR custodian_public_key.
    Seal and open must pass the same two public keys; their order does not
    matter for the salt but callers keep ephemeral first anyway.
    """
    salt = xor_combine(ephemeral_public_key, custodian_public_key)
    hkdf = HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info)
    return hkdf.derive(shared_secret)


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_master_key(
    password: bytes,
    salt: bytes,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
    key_len: int = 32,
) -> bytes:
    """
    Derive a domain key from a passphrase using Argon2id.
    Returns raw derived key bytes.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=key_len,
        type=Type.ID,
    )
