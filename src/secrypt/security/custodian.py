"""
Key custodians: holders of the long-lived private key an envelope is sealed to.

A custodian hands out an opaque KeyHandle plus the matching public key, and
later performs ECDH with that handle once the caller's AuthenticationContext
has approved the use. The core never looks inside a handle.

Two software custodians are provided for machines without a secure element.
Both keep the P-256 scalar only in wrapped form inside the handle, bound to a
*domain key* that never leaves the custodian:

- KeyringCustodian: domain key is random and kept in the OS keystore;
  initialize() creates it once, before the first seal
- PassphraseCustodian: domain key is Argon2id(passphrase, per-handle salt)

Handle layout (binary, all big-endian):
- 4 bytes: magic b'SEK1'
- 1 byte: version (1)
- 1 byte: domain id (1 = keyring, 2 = passphrase)
- 1 byte: len_params (P), then P bytes of domain parameters
- 1 byte: len_public_key (K), then K bytes compressed public key
- 2 bytes: len_wrapped (W), then W bytes AES-KW wrapped scalar
- 32 bytes: HMAC-SHA256 over everything above
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import os
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap, aes_key_wrap

from secrypt.core.exceptions import (
    AuthenticationDeniedError,
    CustodianUnavailableError,
    InvalidHandleError,
    KeyAgreementError,
)
from .agreement import CURVE, encode_public_key, exchange, load_public_key
from .auth import AuthenticationContext
from .kdf import derive_master_key, generate_salt
from .keystore import KeystoreUnavailableError, assess_keyring_backend, load_key, save_key

logger = logging.getLogger(__name__)

MAGIC = b"SEK1"
VERSION = 1
DOMAIN_KEYRING = 1
DOMAIN_PASSPHRASE = 2
MAC_LEN = 32
SCALAR_LEN = 32


class AccessPolicy(str, Enum):
    # every use of the key requires a local presence check
    USER_PRESENCE = "userPresence"


@dataclass(frozen=True)
class KeyHandle:
    """Opaque custodian handle. Not key material; only its custodian can use it."""

    data: bytes = field(repr=False)

    def __post_init__(self):
        if not isinstance(self.data, bytes) or not self.data:
            raise InvalidHandleError("key handle must be non-empty bytes")

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"KeyHandle(<{len(self.data)} bytes>)"


def key_fingerprint(public_key: bytes) -> str:
    # short, log-friendly identifier for a public key
    return hashlib.sha256(public_key).hexdigest()[:16]


class Custodian(ABC):
    """Capability that guards a private key behind local authentication."""

    def initialize(self) -> bool:
        """Create whatever storage the custodian needs before its first key.

        Returns True when something was created. Calling it again is harmless.
        """
        return False

    @abstractmethod
    def generate_protected_key(
        self,
        context: AuthenticationContext,
        policy: AccessPolicy = AccessPolicy.USER_PRESENCE,
    ) -> Tuple[KeyHandle, bytes]:
        """Create a new protected key; return (handle, compressed public key)."""

    @abstractmethod
    def agree(self, handle: KeyHandle, peer_public_key: bytes, context: AuthenticationContext) -> bytes:
        """ECDH between the handle's private key and ``peer_public_key``."""

    @abstractmethod
    def reconstruct_handle(self, data: bytes) -> KeyHandle:
        """Turn stored handle bytes back into a KeyHandle or raise InvalidHandleError."""

    @abstractmethod
    def public_key(self, handle: KeyHandle) -> bytes:
        """Compressed public key belonging to ``handle``."""


class _ParsedHandle(NamedTuple):
    domain: int
    params: bytes
    public_key: bytes
    wrapped: bytes
    signed: bytes
    mac: bytes


def _derive_kek(domain_key: bytes, info: bytes = b"secrypt-custodian-kek") -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=info)
    return hkdf.derive(domain_key)


def _derive_handle_mac_key(domain_key: bytes, info: bytes = b"secrypt-custodian-handle-mac") -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=info)
    return hkdf.derive(domain_key)


def _parse_handle(data: bytes) -> _ParsedHandle:
    def take(n: int) -> bytes:
        nonlocal pos
        if pos + n > len(data):
            raise InvalidHandleError("truncated key handle")
        chunk = data[pos:pos + n]
        pos += n
        return chunk

    pos = 0
    if take(4) != MAGIC:
        raise InvalidHandleError("invalid key handle (magic mismatch)")
    (ver,) = struct.unpack("B", take(1))
    if ver != VERSION:
        raise InvalidHandleError(f"unsupported key handle version {ver}")
    (domain,) = struct.unpack("B", take(1))
    (params_len,) = struct.unpack("B", take(1))
    params = take(params_len)
    (pub_len,) = struct.unpack("B", take(1))
    public_key = take(pub_len)
    (wrapped_len,) = struct.unpack(">H", take(2))
    wrapped = take(wrapped_len)
    signed = data[:pos]
    mac = take(MAC_LEN)
    if pos != len(data):
        raise InvalidHandleError("trailing bytes after key handle")
    return _ParsedHandle(domain, params, public_key, wrapped, signed, mac)


class SoftwareCustodian(Custodian):
    """Shared handle wrapping logic; subclasses decide where the domain key comes from."""

    domain: int = 0
    # raised when the handle MAC does not verify under the unlocked domain key
    mac_mismatch_error = InvalidHandleError

    @abstractmethod
    def _new_domain_key(self, context: AuthenticationContext) -> Tuple[bytes, bytes]:
        """Return (domain_key, params) for a handle about to be created."""

    @abstractmethod
    def _unlock_domain_key(self, params: bytes, context: AuthenticationContext) -> bytes:
        """Authenticate through ``context`` and return the handle's domain key."""

    def _parse(self, data: bytes) -> _ParsedHandle:
        parsed = _parse_handle(data)
        if parsed.domain != self.domain:
            raise InvalidHandleError(
                f"key handle belongs to domain {parsed.domain}, not {type(self).__name__}"
            )
        return parsed

    def generate_protected_key(
        self,
        context: AuthenticationContext,
        policy: AccessPolicy = AccessPolicy.USER_PRESENCE,
    ) -> Tuple[KeyHandle, bytes]:
        if policy != AccessPolicy.USER_PRESENCE:
            raise ValueError(f"unsupported access policy: {policy!r}")

        domain_key, params = self._new_domain_key(context)
        private_key = ec.generate_private_key(CURVE)
        public_key = encode_public_key(private_key.public_key())
        scalar = private_key.private_numbers().private_value.to_bytes(SCALAR_LEN, "big")
        wrapped = aes_key_wrap(_derive_kek(domain_key), scalar)

        header = bytearray()
        header += MAGIC
        header += struct.pack("B", VERSION)
        header += struct.pack("B", self.domain)
        header += struct.pack("B", len(params))
        header += params
        header += struct.pack("B", len(public_key))
        header += public_key
        header += struct.pack(">H", len(wrapped))
        header += wrapped

        mac = hmac.new(_derive_handle_mac_key(domain_key), bytes(header), hashlib.sha256).digest()
        logger.debug("generated protected key %s in %s", key_fingerprint(public_key), type(self).__name__)
        return KeyHandle(bytes(header) + mac), public_key

    def agree(self, handle: KeyHandle, peer_public_key: bytes, context: AuthenticationContext) -> bytes:
        if not isinstance(handle, KeyHandle):
            raise TypeError("agree() expects a KeyHandle, not raw bytes")
        parsed = self._parse(handle.data)
        # reject a bad peer key before asking the user for anything
        load_public_key(peer_public_key)

        domain_key = self._unlock_domain_key(parsed.params, context)
        expected = hmac.new(_derive_handle_mac_key(domain_key), parsed.signed, hashlib.sha256).digest()
        if not hmac.compare_digest(parsed.mac, expected):
            raise self.mac_mismatch_error("key handle authentication failed (HMAC mismatch)")

        try:
            scalar = aes_key_unwrap(_derive_kek(domain_key), parsed.wrapped)
        except InvalidUnwrap as e:
            raise InvalidHandleError("wrapped private key failed to unwrap") from e
        try:
            private_key = ec.derive_private_key(int.from_bytes(scalar, "big"), CURVE)
        except ValueError as e:
            raise InvalidHandleError("wrapped private key is not a valid P-256 scalar") from e
        if encode_public_key(private_key.public_key()) != parsed.public_key:
            raise InvalidHandleError("key handle public key does not match its private key")

        logger.debug("custodian agreement with key %s", key_fingerprint(parsed.public_key))
        return exchange(private_key, peer_public_key)

    def reconstruct_handle(self, data: bytes) -> KeyHandle:
        data = bytes(data)
        self._parse(data)
        return KeyHandle(data)

    def public_key(self, handle: KeyHandle) -> bytes:
        parsed = self._parse(handle.data)
        try:
            load_public_key(parsed.public_key)
        except KeyAgreementError as e:
            raise InvalidHandleError("key handle carries an invalid public key") from e
        return parsed.public_key


class KeyringCustodian(SoftwareCustodian):
    """Domain key lives in the OS keystore under (service, account).

    Every agreement runs the context's presence check first.
    """

    domain = DOMAIN_KEYRING

    def __init__(self, service: str = "secrypt", account: str = "default", allow_insecure_backend: bool = False):
        self.service = service
        self.account = account
        self.allow_insecure_backend = allow_insecure_backend

    def _load(self):
        try:
            return load_key(self.service, self.account)
        except KeystoreUnavailableError as e:
            raise CustodianUnavailableError(str(e)) from e

    def initialize(self) -> bool:
        """Store a fresh domain key unless one already exists.

        This is the only place the domain key is written; generating a key
        only reads it.
        """
        if self._load() is not None:
            return False
        secure, msg = assess_keyring_backend()
        if not secure and not self.allow_insecure_backend:
            raise CustodianUnavailableError(f"refusing to store a domain key in the OS keystore: {msg}")
        try:
            save_key(self.service, self.account, os.urandom(32))
        except KeystoreUnavailableError as e:
            raise CustodianUnavailableError(str(e)) from e
        logger.info("created domain key in OS keystore for %s/%s", self.service, self.account)
        return True

    def _new_domain_key(self, context: AuthenticationContext) -> Tuple[bytes, bytes]:
        domain_key = self._load()
        if domain_key is None:
            raise CustodianUnavailableError(
                f"no domain key in OS keystore for {self.service}/{self.account}; run 'secrypt init' first"
            )
        return domain_key, b""

    def _unlock_domain_key(self, params: bytes, context: AuthenticationContext) -> bytes:
        if params:
            raise InvalidHandleError("keyring key handle must not carry domain parameters")
        context.evaluate(f"use the secrypt key stored for {self.service}/{self.account}")
        domain_key = self._load()
        if domain_key is None:
            raise CustodianUnavailableError(
                f"no domain key found in OS keystore for {self.service}/{self.account}"
            )
        return domain_key


_ARGON2_PARAMS = struct.Struct(">BIB")
# upper bounds applied to parameters read from a handle
MAX_TIME_COST = 16
MAX_MEMORY_COST = 1 << 21


class PassphraseCustodian(SoftwareCustodian):
    """Domain key is derived from a passphrase with Argon2id.

    Argon2 parameters and the salt are stored in each handle so a handle opens
    regardless of the parameters the custodian was constructed with.
    """

    domain = DOMAIN_PASSPHRASE
    mac_mismatch_error = AuthenticationDeniedError

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 1, salt_len: int = 16):
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism
        self.salt_len = salt_len

    def _new_domain_key(self, context: AuthenticationContext) -> Tuple[bytes, bytes]:
        passphrase = context.new_passphrase("choose the passphrase protecting the new secrypt key")
        salt = generate_salt(self.salt_len)
        domain_key = derive_master_key(
            passphrase,
            salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
        )
        params = _ARGON2_PARAMS.pack(self.time_cost, self.memory_cost, self.parallelism) + salt
        return domain_key, params

    def _unlock_domain_key(self, params: bytes, context: AuthenticationContext) -> bytes:
        if len(params) < _ARGON2_PARAMS.size + 8:
            raise InvalidHandleError("passphrase key handle is missing its Argon2 parameters")
        time_cost, memory_cost, parallelism = _ARGON2_PARAMS.unpack(params[:_ARGON2_PARAMS.size])
        if not (1 <= time_cost <= MAX_TIME_COST and 1 <= parallelism and 8 * parallelism <= memory_cost <= MAX_MEMORY_COST):
            raise InvalidHandleError("passphrase key handle has out-of-range Argon2 parameters")
        salt = params[_ARGON2_PARAMS.size:]
        passphrase = context.passphrase("enter the passphrase protecting the secrypt key")
        return derive_master_key(
            passphrase,
            salt,
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )
