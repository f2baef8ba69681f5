"""
Centralized Constants Module for IMA signatures.

This module consolidates the wire-format values, default locations and
exit codes used throughout the package so they are defined exactly once
and are easy to audit.

Usage:
    from ima.constants import SignatureFormat, XattrNames, ExitCode

    if data[0] != SignatureFormat.MAGIC:
        ...
    os.getxattr(path, XattrNames.IMA)
"""

import os
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)


# =============================================================================
# ENVIRONMENT OVERRIDES
# =============================================================================

T = TypeVar('T')

ENV_PREFIX = "IMA_"


def _env_override(
    env_var: str,
    default: T,
    converter: Callable[[str], T] = str,
    validator: Optional[Callable[[T], bool]] = None,
    min_value: Optional[T] = None,
    max_value: Optional[T] = None,
) -> T:
    """
    Read IMA_<env_var>, falling back to default when unset or unusable.

    A value that does not convert, lies outside [min_value, max_value] or
    is refused by validator is logged and ignored, so a bad environment
    never breaks import of this module.
    """
    name = f"{ENV_PREFIX}{env_var}"
    raw = os.environ.get(name)
    if raw is None:
        return default

    try:
        value = converter(raw)
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring {name}={raw!r}: {e}")
        return default

    problem = None
    if min_value is not None and value < min_value:
        problem = f"less than {min_value}"
    elif max_value is not None and value > max_value:
        problem = f"greater than {max_value}"
    elif validator is not None and not validator(value):
        problem = "rejected by validator"

    if problem:
        logger.warning(f"Ignoring {name}={raw!r}: {problem}")
        return default

    logger.debug(f"{name} overrides default {default!r} with {value!r}")
    return value


def parse_bool(value: str) -> bool:
    """Parse a boolean environment/config string."""
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes', 'on'):
        return True
    if lowered in ('0', 'false', 'no', 'off', ''):
        return False
    raise ValueError(f"not a boolean: {value!r}")


# =============================================================================
# SIGNATURE WIRE FORMAT
# =============================================================================

@dataclass(frozen=True)
class SignatureFormat:
    """
    Fixed layout of an IMA signature (version 2, "digital signature").

    Offset  Size  Field
    0       1     magic (0x03)
    1       1     version (0x02)
    2       1     hash algorithm id
    3       4     key id
    7       2     signature length (big-endian)
    9       n     signature bytes
    """
    MAGIC: int = 0x03
    VERSION: int = 0x02
    HEADER_SIZE: int = 9
    KEY_ID_SIZE: int = 4
    MAX_SIGNATURE_LENGTH: int = 0xFFFF

    # Bytes of the SHA-1 key digest kept as the key id (the last four)
    KEY_ID_OFFSET: int = 16


# =============================================================================
# EXTENDED ATTRIBUTES
# =============================================================================

@dataclass(frozen=True)
class XattrNames:
    """Extended attribute names holding serialized signatures."""
    IMA: str = "security.ima"
    # Unprivileged namespace, usable without CAP_SYS_ADMIN
    USER_IMA: str = "user.ima"


# =============================================================================
# PATHS
# =============================================================================

@dataclass(frozen=True)
class Paths:
    """Default key and configuration locations."""
    PUBLIC_KEY: str = "/etc/keys/pubkey_evm.pem"
    PRIVATE_KEY: str = "/etc/keys/privkey_evm.pem"
    CONFIG_FILE: str = "/etc/ima/imactl.yaml"


# =============================================================================
# BUFFER SIZES
# =============================================================================

@dataclass(frozen=True)
class BufferSizes:
    """Chunk sizes used when streaming file content."""
    HASH_CHUNK: int = _env_override(
        'HASH_CHUNK', 64 * 1024, int, min_value=512, max_value=16 * 1024 * 1024,
    )


DEFAULT_HASH_ALGORITHM = "sha256"


# =============================================================================
# EXIT CODES
# =============================================================================

class ExitCode(IntEnum):
    """Process exit status of the command-line tool."""
    SUCCESS = 0
    VERIFICATION_FAILED = 1   # Bad signature or unknown signer
    INVALID_INPUT = 2         # Malformed signature, unsupported algorithm/key
    IO_ERROR = 3              # Attribute or key file could not be read/written
    CONFIG_ERROR = 4          # Bad configuration or usage


__all__ = [
    'ENV_PREFIX',
    'parse_bool',
    'SignatureFormat',
    'XattrNames',
    'Paths',
    'BufferSizes',
    'DEFAULT_HASH_ALGORITHM',
    'ExitCode',
]
