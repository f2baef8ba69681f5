"""
Signature Codec - binary parse/serialize of IMA signatures.

An IMA signature is a 9 byte big-endian header followed by the raw
signature bytes:

    ┌───────┬─────────┬──────┬──────────┬────────────┬───────────────┐
    │ magic │ version │ hash │  key id  │ sig length │  signature    │
    │  1 B  │   1 B   │ 1 B  │   4 B    │   2 B (BE) │  sig length B │
    └───────┴─────────┴──────┴──────────┴────────────┴───────────────┘

The signature length field is redundant with the body and is always
recomputed on serialize. Parsing does not reject unknown versions; use
check_version() where only version 2 is acceptable.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .constants import SignatureFormat
from .errors import (
    FormatError,
    LengthMismatch,
    MissingSignatureBytes,
    TruncatedInput,
    UnsupportedVersion,
)
from .hashes import HASH_FUNCTIONS, HashAlgorithm

logger = logging.getLogger(__name__)

# magic, version, hash id, key id, signature length
_HEADER = struct.Struct(">BBB4sH")

BytesLike = Union[bytes, bytearray, memoryview]


@dataclass
class SignatureHeader:
    """Fixed size header of an IMA signature."""
    magic: int = SignatureFormat.MAGIC
    version: int = SignatureFormat.VERSION
    hash_algorithm_id: int = 0
    key_id: bytes = b"\x00" * SignatureFormat.KEY_ID_SIZE
    # Set by serialize() from the actual signature; do not rely on it
    signature_length: int = 0

    def hash_algorithm(self) -> HashAlgorithm:
        """
        Resolve the hash the signature was made over.

        Raises:
            UnsupportedAlgorithm: if the id is not in the IMA hash table
        """
        return HASH_FUNCTIONS.id_to_algorithm(self.hash_algorithm_id)

    def pack(self) -> bytes:
        """Encode the header into its 9 byte wire form."""
        for name in ('magic', 'version', 'hash_algorithm_id'):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise FormatError(f"ima: header field {name}={value} does not fit in a byte")
        if len(self.key_id) != SignatureFormat.KEY_ID_SIZE:
            raise FormatError(
                f"ima: key id must be {SignatureFormat.KEY_ID_SIZE} bytes, got {len(self.key_id)}"
            )
        if not 0 <= self.signature_length <= SignatureFormat.MAX_SIGNATURE_LENGTH:
            raise FormatError(
                f"ima: signature length {self.signature_length} does not fit in 16 bits"
            )
        return _HEADER.pack(
            self.magic,
            self.version,
            self.hash_algorithm_id,
            bytes(self.key_id),
            self.signature_length,
        )

    @classmethod
    def unpack(cls, data: BytesLike) -> 'SignatureHeader':
        """Decode the first 9 bytes of data."""
        if len(data) < SignatureFormat.HEADER_SIZE:
            raise TruncatedInput(SignatureFormat.HEADER_SIZE, len(data))
        magic, version, hash_id, key_id, length = _HEADER.unpack_from(data)
        return cls(
            magic=magic,
            version=version,
            hash_algorithm_id=hash_id,
            key_id=key_id,
            signature_length=length,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'magic': self.magic,
            'version': self.version,
            'hash_algorithm_id': self.hash_algorithm_id,
            'key_id': bytes(self.key_id).hex(),
            'signature_length': self.signature_length,
        }


@dataclass
class Signature:
    """An IMA signature header together with the signature bytes."""
    header: SignatureHeader = field(default_factory=SignatureHeader)
    signature: Optional[bytes] = None

    def hash_algorithm(self) -> HashAlgorithm:
        """Shortcut for header.hash_algorithm()."""
        return self.header.hash_algorithm()


def serialize(signature: Signature) -> bytes:
    """
    Convert a Signature to its wire form.

    header.signature_length is overwritten with the real length of the
    signature bytes before encoding.

    Raises:
        MissingSignatureBytes: if signature.signature is None
        FormatError: if a header field or the signature is out of range
    """
    if signature.signature is None:
        raise MissingSignatureBytes("ima: refusing to serialize without a signature")

    body = bytes(signature.signature)
    if len(body) > SignatureFormat.MAX_SIGNATURE_LENGTH:
        raise FormatError(
            f"ima: signature of {len(body)} bytes exceeds "
            f"{SignatureFormat.MAX_SIGNATURE_LENGTH}"
        )

    signature.header.signature_length = len(body)
    return signature.header.pack() + body


def parse(data: BytesLike) -> Signature:
    """
    Parse raw bytes (typically an xattr value) into a Signature.

    Raises:
        TruncatedInput: if data is shorter than the header
        FormatError: if the magic byte is not 0x03
        LengthMismatch: if the body length differs from the declared one
    """
    header = SignatureHeader.unpack(data)
    if header.magic != SignatureFormat.MAGIC:
        raise FormatError(
            f"ima: input data is in a bad format (magic 0x{header.magic:02x})",
            reason="bad_magic",
        )

    body = bytes(data[SignatureFormat.HEADER_SIZE:])
    if len(body) != header.signature_length:
        raise LengthMismatch(header.signature_length, len(body))

    logger.debug(
        f"Parsed signature (version={header.version}, hash_id={header.hash_algorithm_id}, "
        f"key_id={bytes(header.key_id).hex()}, length={len(body)})"
    )
    return Signature(header=header, signature=body)


def check_version(signature: Signature) -> Signature:
    """
    Require a version 2 signature.

    Raises:
        UnsupportedVersion: for any other version
    """
    if signature.header.version != SignatureFormat.VERSION:
        raise UnsupportedVersion(signature.header.version)
    return signature


__all__ = [
    'SignatureHeader',
    'Signature',
    'serialize',
    'parse',
    'check_version',
]
