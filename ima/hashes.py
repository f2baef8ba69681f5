"""
Hash Registry - mapping between IMA hash algorithm ids and hash functions.

IMA stores the digest algorithm of a signature as a single byte. The ids
follow the kernel's historic enumeration, which is not sorted by strength
and still includes algorithms (MD4, MD5, SHA-1) kept only so that old
signatures can be read.

    id  algorithm
    0   MD4
    1   MD5
    2   SHA-1
    3   RIPEMD-160
    4   SHA-256
    5   SHA-384
    6   SHA-512
    7   SHA-224

Usage:
    from ima.hashes import HASH_FUNCTIONS, HashAlgorithm

    hash_id = HASH_FUNCTIONS.algorithm_to_id(HashAlgorithm.SHA256)   # 4
    algorithm = HASH_FUNCTIONS.id_to_algorithm(2)                     # SHA1
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Tuple

from cryptography.hazmat.primitives import hashes

from .errors import UnsupportedAlgorithm


class HashAlgorithm(Enum):
    """Hash functions known to the IMA signature format."""
    MD4 = "md4"
    MD5 = "md5"
    SHA1 = "sha1"
    RIPEMD160 = "ripemd160"
    SHA224 = "sha224"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"

    @property
    def digest_size(self) -> int:
        """Digest length in bytes."""
        return _DIGEST_SIZES[self]

    def new(self) -> "hashlib._Hash":
        """
        Create a streaming hash object for this algorithm.

        Raises:
            UnsupportedAlgorithm: if the local OpenSSL build lacks it
        """
        try:
            return hashlib.new(self.value)
        except ValueError as e:
            raise UnsupportedAlgorithm(
                f"ima: hash {self.name} not available in this build: {e}"
            ) from e

    def to_cryptography(self) -> hashes.HashAlgorithm:
        """
        Get the cryptography hash instance used by RSA sign/verify.

        Raises:
            UnsupportedAlgorithm: for table-only algorithms (MD4, RIPEMD-160)
        """
        factory = _CRYPTOGRAPHY_HASHES.get(self)
        if factory is None:
            raise UnsupportedAlgorithm(
                f"ima: hash {self.name} cannot be used for RSA signatures"
            )
        return factory()

    @classmethod
    def from_name(cls, name: str) -> "HashAlgorithm":
        """Parse a user supplied name such as 'sha256', 'SHA-256' or 'sha_256'."""
        normalized = name.strip().lower().replace('-', '').replace('_', '')
        for algorithm in cls:
            if algorithm.value == normalized:
                return algorithm
        raise UnsupportedAlgorithm(f"ima: unknown hash algorithm {name!r}")


_DIGEST_SIZES = {
    HashAlgorithm.MD4: 16,
    HashAlgorithm.MD5: 16,
    HashAlgorithm.SHA1: 20,
    HashAlgorithm.RIPEMD160: 20,
    HashAlgorithm.SHA224: 28,
    HashAlgorithm.SHA256: 32,
    HashAlgorithm.SHA384: 48,
    HashAlgorithm.SHA512: 64,
}

_CRYPTOGRAPHY_HASHES = {
    HashAlgorithm.MD5: hashes.MD5,
    HashAlgorithm.SHA1: hashes.SHA1,
    HashAlgorithm.SHA224: hashes.SHA224,
    HashAlgorithm.SHA256: hashes.SHA256,
    HashAlgorithm.SHA384: hashes.SHA384,
    HashAlgorithm.SHA512: hashes.SHA512,
}


@dataclass(frozen=True)
class Hash:
    """One entry of the IMA hash table."""
    id: int
    algorithm: HashAlgorithm


class HashRegistry:
    """
    Immutable bidirectional table of IMA hash entries.

    Every id maps to exactly one algorithm and every algorithm to exactly
    one id; construction fails otherwise.
    """

    def __init__(self, entries: Tuple[Hash, ...]):
        ids = [entry.id for entry in entries]
        algorithms = [entry.algorithm for entry in entries]
        if len(set(ids)) != len(ids):
            raise ValueError("duplicate IMA hash id in registry")
        if len(set(algorithms)) != len(algorithms):
            raise ValueError("duplicate hash algorithm in registry")
        for entry in entries:
            if not 0 <= entry.id <= 0xFF:
                raise ValueError(f"IMA hash id {entry.id} does not fit in a byte")
        self._entries = tuple(entries)

    def __iter__(self) -> Iterator[Hash]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_hash(self, algorithm: HashAlgorithm) -> Hash:
        """Find the table entry for a hash algorithm."""
        for entry in self._entries:
            if entry.algorithm == algorithm:
                return entry
        raise UnsupportedAlgorithm(f"ima: no IMA hash id for {algorithm}")

    def algorithm_to_id(self, algorithm: HashAlgorithm) -> int:
        """Convert a hash algorithm to its IMA id."""
        return self.to_hash(algorithm).id

    def id_to_algorithm(self, hash_id: int) -> HashAlgorithm:
        """Convert an IMA hash id to its hash algorithm."""
        for entry in self._entries:
            if entry.id == hash_id:
                return entry.algorithm
        raise UnsupportedAlgorithm(f"ima: no matching IMA hash found for id {hash_id}")


MD4 = Hash(id=0, algorithm=HashAlgorithm.MD4)
MD5 = Hash(id=1, algorithm=HashAlgorithm.MD5)
SHA1 = Hash(id=2, algorithm=HashAlgorithm.SHA1)
RIPEMD160 = Hash(id=3, algorithm=HashAlgorithm.RIPEMD160)
SHA256 = Hash(id=4, algorithm=HashAlgorithm.SHA256)
SHA384 = Hash(id=5, algorithm=HashAlgorithm.SHA384)
SHA512 = Hash(id=6, algorithm=HashAlgorithm.SHA512)
SHA224 = Hash(id=7, algorithm=HashAlgorithm.SHA224)

HASH_FUNCTIONS = HashRegistry((
    MD4, MD5,
    SHA1,
    RIPEMD160,
    SHA256, SHA384, SHA512,
    SHA224,
))


__all__ = [
    'HashAlgorithm',
    'Hash',
    'HashRegistry',
    'HASH_FUNCTIONS',
    'MD4',
    'MD5',
    'SHA1',
    'RIPEMD160',
    'SHA224',
    'SHA256',
    'SHA384',
    'SHA512',
]
