"""
Extended attribute storage for IMA signatures.

Reads and writes serialized signatures on files and measures file content.
The attribute name defaults to security.ima; writing it requires
CAP_SYS_ADMIN, so tests and unprivileged users may use user.ima instead.

Usage:
    store = XattrStore()                       # security.ima
    sign_file('/usr/bin/tool', signer)         # measure, sign, store
    key = verify_file('/usr/bin/tool', pool)   # load, measure, verify
"""

import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Optional, Union

from .constants import BufferSizes, XattrNames
from .hashes import HashAlgorithm
from .keys import KeyPool, PublicKey, RandomSource
from .signature import Signature, check_version, parse
from .signing import sign, verify

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class XattrStore:
    """Access to the extended attribute holding a file's signature."""

    def __init__(self, attr_name: str = XattrNames.IMA):
        self.attr_name = attr_name

    def read(self, path: PathLike) -> bytes:
        """
        Read the raw attribute value.

        Raises:
            OSError: ENODATA if the file carries no signature
        """
        return os.getxattr(os.fspath(path), self.attr_name)

    def write(self, path: PathLike, value: bytes) -> None:
        """Store a raw attribute value, replacing any previous one."""
        os.setxattr(os.fspath(path), self.attr_name, value)
        logger.debug(f"Wrote {len(value)} bytes to {self.attr_name} on {path}")

    def remove(self, path: PathLike) -> None:
        os.removexattr(os.fspath(path), self.attr_name)

    def load(self, path: PathLike) -> Signature:
        """Read and parse the signature of a file."""
        return parse(self.read(path))


def measure(source: Union[PathLike, BinaryIO], algorithm: HashAlgorithm) -> bytes:
    """
    Digest file content with the given algorithm.

    Args:
        source: Path, or a binary file object read from its current position

    Returns:
        Raw digest bytes
    """
    if isinstance(source, (str, Path)):
        with open(source, 'rb') as f:
            return measure(f, algorithm)

    hasher = algorithm.new()
    while True:
        chunk = source.read(BufferSizes.HASH_CHUNK)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.digest()


def sign_file(
    path: PathLike,
    signer: Any,
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256,
    store: Optional[XattrStore] = None,
    rand: Optional[RandomSource] = None,
) -> bytes:
    """
    Measure a file, sign the digest and store it in the attribute.

    Returns:
        The serialized signature that was written
    """
    store = store or XattrStore()
    digest = measure(path, hash_algorithm)
    value = sign(signer, digest, hash_algorithm, rand)
    store.write(path, value)
    logger.info(f"Signed {path} ({hash_algorithm.name})")
    return value


def verify_file(
    path: PathLike,
    keys: KeyPool,
    store: Optional[XattrStore] = None,
    strict_version: bool = True,
) -> PublicKey:
    """
    Load a file's signature, measure the file with the declared hash and
    verify it against the key pool.

    Returns:
        The public key that produced the signature

    Raises:
        OSError: if the attribute or file cannot be read
        UnsupportedVersion: if strict_version and the signature is not v2
        UnsupportedAlgorithm: if the declared hash is unknown
        UnknownSigner / InvalidSignature: see ima.signing.verify
    """
    store = store or XattrStore()
    signature = store.load(path)
    if strict_version:
        check_version(signature)

    algorithm = signature.hash_algorithm()
    digest = measure(path, algorithm)
    key = verify(signature, digest, algorithm, keys)
    logger.info(f"Verified {path} (key_id={key.key_id().hex()})")
    return key


__all__ = [
    'XattrStore',
    'measure',
    'sign_file',
    'verify_file',
]
