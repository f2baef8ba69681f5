"""
IMA signatures - encode, decode, sign and verify IMA file signatures.

Integrity Measurement Architecture (IMA) stores file signatures in the
security.ima extended attribute. This package parses and serializes the
version 2 signature format, identifies RSA keys by their 4 byte key id,
and signs or verifies file digests against a pool of public keys.

Features:
- IMA hash id table (ima.hashes)
- Key ids, key pools and PEM loading (ima.keys)
- Signature codec (ima.signature)
- Sign/verify engine (ima.signing)
- Extended attribute helpers (ima.xattr)
"""

# Installs the ImaLogger class before module loggers are created
from . import logging_config  # noqa: F401

from .errors import (
    ImaError,
    FormatError,
    UnsupportedVersion,
    TruncatedInput,
    LengthMismatch,
    UnsupportedAlgorithm,
    UnsupportedKeyFormat,
    MissingSignatureBytes,
    UnknownSigner,
    ConfigError,
)

from .hashes import (
    HashAlgorithm,
    Hash,
    HashRegistry,
    HASH_FUNCTIONS,
)

from .keys import (
    PublicKey,
    Signer,
    RsaPublicKey,
    RsaSigner,
    KeyPool,
    LockedKeyPool,
    public_key_id,
    load_key_pool,
    load_signer,
)

from .signature import (
    SignatureHeader,
    Signature,
    parse,
    serialize,
    check_version,
)

from .signing import (
    VerifyOptions,
    sign,
    verify,
    verify_with_options,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
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

    # Hashes
    'HashAlgorithm',
    'Hash',
    'HashRegistry',
    'HASH_FUNCTIONS',

    # Keys
    'PublicKey',
    'Signer',
    'RsaPublicKey',
    'RsaSigner',
    'KeyPool',
    'LockedKeyPool',
    'public_key_id',
    'load_key_pool',
    'load_signer',

    # Codec
    'SignatureHeader',
    'Signature',
    'parse',
    'serialize',
    'check_version',

    # Engine
    'VerifyOptions',
    'sign',
    'verify',
    'verify_with_options',
]
