"""
Keys - key identification, key pools and key loading.

IMA signatures do not carry the signer's public key. Instead the header
holds a 4 byte key id: the last 4 bytes of the SHA-1 digest of the
PKCS#1 DER encoding of the RSA public key. The id is only a filter used
to narrow down candidate keys; two different keys may share it, so the
identity of a signer is only established by a successful verification.

Architecture:
    ┌──────────────┐   key_id()   ┌────────────────────────────────┐
    │  PublicKey   │─────────────►│ KeyPool                        │
    │  (RSA only)  │              │   "db1ff72a" -> [key, key, ...] │
    └──────┬───────┘              │   "0c8e51d4" -> [key]          │
           │ verify()             └────────────────────────────────┘
           ▼
    cryptography RSA PKCS#1 v1.5 (prehashed digest)

Only RSA keys are supported. Anything else is rejected with
UnsupportedKeyFormat when it is first wrapped.
"""

import hashlib
import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from .constants import SignatureFormat
from .errors import FormatError, UnsupportedKeyFormat
from .hashes import HashAlgorithm

logger = logging.getLogger(__name__)

# Reads n bytes of entropy; accepted by signers for API symmetry
RandomSource = Callable[[int], bytes]


# =============================================================================
# CAPABILITY INTERFACES
# =============================================================================

class PublicKey(ABC):
    """A public key that can identify itself and check IMA signatures."""

    @abstractmethod
    def key_id(self) -> bytes:
        """Return the 4 byte IMA key id."""
        pass

    @abstractmethod
    def verify(self, signature: bytes, digest: bytes, algorithm: HashAlgorithm) -> None:
        """
        Check a signature over a precomputed digest.

        Raises:
            InvalidSignature: if the signature does not verify
        """
        pass


class Signer(ABC):
    """A private key able to produce IMA signatures."""

    @abstractmethod
    def public_key(self) -> PublicKey:
        """Return the matching public key."""
        pass

    @abstractmethod
    def sign(
        self,
        digest: bytes,
        algorithm: HashAlgorithm,
        rand: Optional[RandomSource] = None,
    ) -> bytes:
        """Sign a precomputed digest."""
        pass


# =============================================================================
# RSA IMPLEMENTATIONS
# =============================================================================

class RsaPublicKey(PublicKey):
    """RSA public key verifying PKCS#1 v1.5 signatures."""

    def __init__(self, key: rsa.RSAPublicKey):
        self._key = key

    @property
    def key(self) -> rsa.RSAPublicKey:
        """The wrapped cryptography key."""
        return self._key

    @property
    def key_size(self) -> int:
        return self._key.key_size

    def to_der(self) -> bytes:
        """PKCS#1 RSAPublicKey DER encoding (SEQUENCE { n, e })."""
        return self._key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.PKCS1,
        )

    def key_id(self) -> bytes:
        digest = hashlib.sha1(self.to_der()).digest()
        offset = SignatureFormat.KEY_ID_OFFSET
        return digest[offset:offset + SignatureFormat.KEY_ID_SIZE]

    def verify(self, signature: bytes, digest: bytes, algorithm: HashAlgorithm) -> None:
        # Prehashed raises ValueError on a wrong digest length; report it
        # as a failed verification like any other mismatch.
        if len(digest) != algorithm.digest_size:
            raise InvalidSignature(
                f"digest is {len(digest)} bytes, {algorithm.name} needs {algorithm.digest_size}"
            )
        self._key.verify(
            signature,
            digest,
            padding.PKCS1v15(),
            Prehashed(algorithm.to_cryptography()),
        )

    def _numbers(self):
        numbers = self._key.public_numbers()
        return (numbers.n, numbers.e)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, RsaPublicKey):
            return self._numbers() == other._numbers()
        if isinstance(other, rsa.RSAPublicKey):
            return self._numbers() == RsaPublicKey(other)._numbers()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._numbers())

    def __repr__(self) -> str:
        return f"RsaPublicKey(bits={self.key_size}, key_id={self.key_id().hex()})"


class RsaSigner(Signer):
    """RSA private key producing PKCS#1 v1.5 signatures."""

    def __init__(self, key: rsa.RSAPrivateKey):
        self._key = key
        self._public = RsaPublicKey(key.public_key())

    @property
    def key(self) -> rsa.RSAPrivateKey:
        return self._key

    def public_key(self) -> PublicKey:
        return self._public

    def sign(
        self,
        digest: bytes,
        algorithm: HashAlgorithm,
        rand: Optional[RandomSource] = None,
    ) -> bytes:
        # PKCS#1 v1.5 is deterministic, rand is never consumed
        if len(digest) != algorithm.digest_size:
            raise ValueError(
                f"digest is {len(digest)} bytes, {algorithm.name} needs {algorithm.digest_size}"
            )
        return self._key.sign(
            digest,
            padding.PKCS1v15(),
            Prehashed(algorithm.to_cryptography()),
        )


def as_public_key(key: Any) -> PublicKey:
    """
    Bring a key into the canonical PublicKey representation.

    Accepts PublicKey implementations and cryptography RSA public keys.

    Raises:
        UnsupportedKeyFormat: for any other key type
    """
    if isinstance(key, PublicKey):
        return key
    if isinstance(key, rsa.RSAPublicKey):
        return RsaPublicKey(key)
    raise UnsupportedKeyFormat(
        f"ima: public key format not supported ({type(key).__name__})"
    )


def as_signer(key: Any) -> Signer:
    """
    Bring a private key into the canonical Signer representation.

    Raises:
        UnsupportedKeyFormat: for anything that is not an RSA private key
    """
    if isinstance(key, Signer):
        return key
    if isinstance(key, rsa.RSAPrivateKey):
        return RsaSigner(key)
    raise UnsupportedKeyFormat(
        f"ima: private key format not supported ({type(key).__name__})"
    )


def public_key_id(key: Any) -> bytes:
    """
    Compute the IMA key id of a public key.

    Returns:
        Last 4 bytes of SHA-1 over the PKCS#1 DER encoded RSA public key
    """
    return as_public_key(key).key_id()


def format_key_id(key_id: bytes) -> str:
    """Render a key id the way it is indexed, as 8 lowercase hex digits."""
    return bytes(key_id).hex()


# =============================================================================
# KEY POOL
# =============================================================================

class KeyPool:
    """
    Keyring of public keys indexed by IMA key id.

    Keys sharing a key id are kept in insertion order in the same bucket.
    The pool is not thread-safe; see LockedKeyPool.

    Usage:
        pool = KeyPool()
        pool.add(public_key)
        candidates = pool.get(signature.header.key_id)
    """

    def __init__(self):
        self._pool: Dict[str, List[PublicKey]] = {}

    def add(self, key: Any) -> PublicKey:
        """
        Add a public key to the pool.

        Returns:
            The key in its canonical PublicKey form

        Raises:
            UnsupportedKeyFormat: if the key cannot be identified
        """
        public_key = as_public_key(key)
        index = format_key_id(public_key.key_id())
        self._pool.setdefault(index, []).append(public_key)
        logger.debug(f"Added key to pool (key_id={index})")
        return public_key

    def maybe_contains(self, key: Any) -> bool:
        """
        Check whether a key with the same key id is in the pool.

        A True answer means a match could exist, not that this exact key
        was added. Keys that cannot be identified are never contained.
        """
        try:
            index = format_key_id(public_key_id(key))
        except UnsupportedKeyFormat:
            return False
        return index in self._pool

    def get(self, key_id: bytes) -> List[PublicKey]:
        """Get all keys with a matching key id, in insertion order."""
        return list(self._pool.get(format_key_id(key_id), ()))

    def key_ids(self) -> List[bytes]:
        """All key ids with at least one key."""
        return [bytes.fromhex(index) for index in self._pool]

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._pool.values())

    def __iter__(self) -> Iterator[PublicKey]:
        for bucket in list(self._pool.values()):
            yield from list(bucket)


class LockedKeyPool(KeyPool):
    """KeyPool guarded by a lock, for pools shared between threads."""

    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()

    def add(self, key: Any) -> PublicKey:
        with self._lock:
            return super().add(key)

    def maybe_contains(self, key: Any) -> bool:
        with self._lock:
            return super().maybe_contains(key)

    def get(self, key_id: bytes) -> List[PublicKey]:
        with self._lock:
            return super().get(key_id)

    def key_ids(self) -> List[bytes]:
        with self._lock:
            return super().key_ids()

    def __len__(self) -> int:
        with self._lock:
            return super().__len__()

    def __iter__(self) -> Iterator[PublicKey]:
        with self._lock:
            snapshot = list(super().__iter__())
        return iter(snapshot)


# =============================================================================
# PEM LOADING
# =============================================================================

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \1-----",
    re.DOTALL,
)

_PUBLIC_KEY_LABELS = ('PUBLIC KEY', 'RSA PUBLIC KEY')


def load_public_keys(path: Union[str, Path]) -> List[Any]:
    """
    Load every public key of a PEM bundle.

    PUBLIC KEY, RSA PUBLIC KEY and CERTIFICATE blocks are accepted. Keys
    are returned as cryptography objects and are not checked for RSA.

    Raises:
        FormatError: if the file holds no usable PEM block
        OSError: if the file cannot be read
    """
    data = Path(path).read_bytes()
    keys = []

    for match in _PEM_BLOCK.finditer(data):
        label = match.group(1).decode('ascii')
        block = match.group(0)
        try:
            if label == 'CERTIFICATE':
                keys.append(x509.load_pem_x509_certificate(block).public_key())
            elif label in _PUBLIC_KEY_LABELS:
                keys.append(serialization.load_pem_public_key(block))
            else:
                raise FormatError(f"ima: unexpected PEM block {label!r} in {path}")
        except ValueError as e:
            raise FormatError(f"ima: malformed {label} block in {path}: {e}") from e

    if not keys:
        raise FormatError(f"ima: no PEM public keys found in {path}")

    logger.debug(f"Loaded {len(keys)} public keys from {path}")
    return keys


def load_key_pool(path: Union[str, Path], pool: Optional[KeyPool] = None) -> KeyPool:
    """Load a PEM bundle into a (new or given) KeyPool."""
    pool = pool if pool is not None else KeyPool()
    for key in load_public_keys(path):
        pool.add(key)
    return pool


def load_signer(path: Union[str, Path], password: Optional[bytes] = None) -> Signer:
    """
    Load an RSA private key (PKCS#1 or PKCS#8 PEM) as a Signer.

    Raises:
        FormatError: if the PEM data cannot be decoded
        UnsupportedKeyFormat: if the key is not RSA
    """
    data = Path(path).read_bytes()
    try:
        key = serialization.load_pem_private_key(data, password=password)
    except (TypeError, ValueError) as e:
        raise FormatError(f"ima: cannot load private key from {path}: {e}") from e
    return as_signer(key)


__all__ = [
    'PublicKey',
    'Signer',
    'RsaPublicKey',
    'RsaSigner',
    'as_public_key',
    'as_signer',
    'public_key_id',
    'format_key_id',
    'KeyPool',
    'LockedKeyPool',
    'load_public_keys',
    'load_key_pool',
    'load_signer',
]
