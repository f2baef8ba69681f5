"""
Sign/Verify Engine - produce and validate IMA signatures.

Signing:
    hash   ──► hash id (HashRegistry) ──┐
    signer ──► key id (key_id())      ──┼──► header ──► signer.sign() ──► serialize()
                                        │
Verification:
    signature ──► pool.get(key id) ──► candidates, tried in insertion order
                                        first success wins, else the last
                                        candidate's error is raised

The digest is always computed by the caller, usually by streaming the
file through the hash (see ima.xattr.measure).
"""

from dataclasses import dataclass
from typing import Any, Optional

from cryptography.exceptions import InvalidSignature

from .constants import SignatureFormat
from .errors import MissingSignatureBytes, UnknownSigner
from .hashes import HASH_FUNCTIONS, HashAlgorithm
from .keys import KeyPool, PublicKey, RandomSource, as_signer
from .logging_config import get_logger
from .signature import Signature, SignatureHeader, serialize

logger = get_logger(__name__)


@dataclass(frozen=True)
class VerifyOptions:
    """Inputs of a verification besides the signature itself."""
    digest: bytes
    hash_algorithm: HashAlgorithm
    keys: KeyPool


def sign(
    signer: Any,
    digest: bytes,
    hash_algorithm: HashAlgorithm,
    rand: Optional[RandomSource] = None,
) -> bytes:
    """
    Sign a digest and return the serialized IMA signature.

    Args:
        signer: Signer, or a cryptography RSA private key
        digest: Precomputed digest of the file content
        hash_algorithm: Algorithm the digest was computed with
        rand: Entropy source handed to the signing capability

    Returns:
        Serialized signature, ready to be stored as an xattr value

    Raises:
        UnsupportedAlgorithm: if the hash has no IMA id
        UnsupportedKeyFormat: if the signer is not RSA
    """
    hash_id = HASH_FUNCTIONS.algorithm_to_id(hash_algorithm)
    signer = as_signer(signer)
    key_id = signer.public_key().key_id()

    header = SignatureHeader(
        magic=SignatureFormat.MAGIC,
        version=SignatureFormat.VERSION,
        hash_algorithm_id=hash_id,
        key_id=key_id,
    )
    raw = signer.sign(digest, hash_algorithm, rand)

    logger.debug(f"Signed digest (hash={hash_algorithm.name}, key_id={key_id.hex()})")
    return serialize(Signature(header=header, signature=raw))


def verify(
    signature: Signature,
    digest: bytes,
    hash_algorithm: HashAlgorithm,
    keys: KeyPool,
) -> PublicKey:
    """
    Verify a signature against the keys of a pool.

    Only keys whose key id matches the header are tried, in the order
    they were added; the first key that verifies is returned.

    Raises:
        MissingSignatureBytes: if the signature has a header only
        UnknownSigner: if no key in the pool has the signature's key id
        InvalidSignature: raised by the last candidate when none verify
    """
    if signature.signature is None:
        raise MissingSignatureBytes("ima: signature has no signature bytes")

    key_id = bytes(signature.header.key_id)
    candidates = keys.get(key_id)
    if not candidates:
        raise UnknownSigner(key_id)

    last_error: Optional[InvalidSignature] = None
    for index, candidate in enumerate(candidates):
        logger.trace(f"Trying candidate {index + 1}/{len(candidates)} (key_id={key_id.hex()})")
        try:
            candidate.verify(signature.signature, digest, hash_algorithm)
        except InvalidSignature as e:
            logger.debug(f"Candidate key rejected signature (key_id={key_id.hex()})")
            last_error = e
            continue
        logger.debug(f"Signature verified (key_id={key_id.hex()})")
        return candidate

    raise last_error


def verify_with_options(signature: Signature, options: VerifyOptions) -> PublicKey:
    """verify() taking its inputs as a VerifyOptions value."""
    return verify(signature, options.digest, options.hash_algorithm, options.keys)


__all__ = [
    'VerifyOptions',
    'sign',
    'verify',
    'verify_with_options',
]
