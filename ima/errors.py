"""
IMA Signature Exceptions

Typed errors raised by the codec, key handling and sign/verify engine.
Verification failure itself is reported with
cryptography.exceptions.InvalidSignature, raised by the verification
capability rather than defined here.
"""

from typing import Optional


class ImaError(Exception):
    """Base exception for all IMA signature errors."""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason or message


class FormatError(ImaError):
    """Raised when signature bytes or header fields are malformed."""
    pass


class UnsupportedVersion(FormatError):
    """Raised by strict callers when a signature is not version 2."""

    def __init__(self, version: int):
        super().__init__(
            f"ima: version 2 signatures are supported, only (got {version})",
            reason="unsupported_version",
        )
        self.version = version


class TruncatedInput(ImaError):
    """Raised when fewer bytes than a full header are available."""

    def __init__(self, needed: int, available: int):
        super().__init__(
            f"ima: need {needed} header bytes, got {available}",
            reason="truncated",
        )
        self.needed = needed
        self.available = available


class LengthMismatch(ImaError):
    """Raised when the declared signature length differs from the body."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"ima: expected signature length of {expected}, got {actual}",
            reason="length_mismatch",
        )
        self.expected = expected
        self.actual = actual


class UnsupportedAlgorithm(ImaError):
    """Raised when a hash algorithm has no IMA id, or an id no algorithm."""
    pass


class UnsupportedKeyFormat(ImaError):
    """Raised for public or private keys that are not RSA."""
    pass


class MissingSignatureBytes(ImaError):
    """Raised when serializing or verifying a Signature without signature bytes."""
    pass


class UnknownSigner(ImaError):
    """Raised when no key in the pool matches a signature's key id."""

    def __init__(self, key_id: bytes):
        super().__init__(
            f"ima: no keys with key id {bytes(key_id).hex()}",
            reason="unknown_signer",
        )
        self.key_id = bytes(key_id)


class ConfigError(ImaError):
    """Raised for unreadable or invalid configuration."""
    pass


__all__ = [
    'ImaError',
    'FormatError',
    'UnsupportedVersion',
    'TruncatedInput',
    'LengthMismatch',
    'UnsupportedAlgorithm',
    'UnsupportedKeyFormat',
    'MissingSignatureBytes',
    'UnknownSigner',
    'ConfigError',
]
