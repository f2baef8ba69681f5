"""
Pytest configuration and shared fixtures for IMA signature tests.

This module provides RSA keys, PEM files and an in-memory extended
attribute store shared by the test modules.
"""

import errno
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Generator, Tuple
from unittest.mock import patch

import pytest

# Add the parent directory to the path for imports
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


# A signature recorded from a real system: SHA-1, key id db1ff72a,
# 128 byte (RSA-1024) signature body.
RECORDED_SIGNATURE = bytes([
    3, 2, 2, 219, 31, 247, 42, 0, 128, 22, 197, 147, 56, 114, 32, 162, 173,
    218, 153, 9, 105, 216, 122, 86, 168, 162, 78, 236, 229, 30, 54, 137,
    253, 34, 156, 76, 86, 231, 253, 221, 78, 185, 159, 54, 12, 46, 227,
    255, 15, 99, 68, 222, 36, 236, 211, 38, 63, 76, 122, 116, 172, 100,
    152, 64, 61, 124, 233, 233, 134, 94, 77, 47, 50, 82, 45, 231, 158, 150,
    208, 203, 38, 93, 91, 42, 184, 254, 84, 149, 60, 229, 61, 94, 89, 165,
    20, 96, 246, 125, 24, 226, 203, 172, 180, 118, 94, 169, 127, 45, 156,
    221, 32, 101, 129, 109, 80, 251, 116, 230, 49, 239, 212, 194, 224, 124,
    114, 192, 31, 217, 176, 249, 227, 239, 198, 217, 26, 120, 157,
])


# ===========================================================================
# Temporary Directory Fixtures
# ===========================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="ima_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def sample_file(temp_dir: Path) -> Path:
    """Provide a file with some content to sign."""
    path = temp_dir / "tool"
    path.write_bytes(b"Totally real ELF no tricks\n" * 100)
    return path


# ===========================================================================
# Key Fixtures
# ===========================================================================

@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """Provide an RSA private key (generated once per session)."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key() -> rsa.RSAPrivateKey:
    """Provide a second, unrelated RSA private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def recorded_signature() -> bytes:
    """Provide the recorded 137 byte IMA signature."""
    return RECORDED_SIGNATURE


def write_public_pem(path: Path, *keys) -> Path:
    """Write public keys as a SubjectPublicKeyInfo PEM bundle."""
    with open(path, 'wb') as f:
        for key in keys:
            f.write(key.public_bytes(
                serialization.Encoding.PEM,
                serialization.PublicFormat.SubjectPublicKeyInfo,
            ))
    return path


def write_private_pem(path: Path, key) -> Path:
    """Write a private key in PKCS#1 ("RSA PRIVATE KEY") PEM form."""
    path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ))
    return path


@pytest.fixture
def pubkey_pem(temp_dir: Path, rsa_key) -> Path:
    """Provide a PEM bundle holding the public half of rsa_key."""
    return write_public_pem(temp_dir / "pubkey.pem", rsa_key.public_key())


@pytest.fixture
def privkey_pem(temp_dir: Path, rsa_key) -> Path:
    """Provide a PEM file holding rsa_key."""
    return write_private_pem(temp_dir / "privkey.pem", rsa_key)


# ===========================================================================
# Extended Attribute Fixtures
# ===========================================================================

@pytest.fixture
def fake_xattrs() -> Generator[Dict[Tuple[str, str], bytes], None, None]:
    """Replace os.*xattr with an in-memory store (no filesystem support needed)."""
    store: Dict[Tuple[str, str], bytes] = {}

    def getxattr(path, attribute, *args, **kwargs):
        try:
            return store[(os.fspath(path), attribute)]
        except KeyError:
            raise OSError(errno.ENODATA, os.strerror(errno.ENODATA), os.fspath(path))

    def setxattr(path, attribute, value, *args, **kwargs):
        store[(os.fspath(path), attribute)] = bytes(value)

    def removexattr(path, attribute, *args, **kwargs):
        try:
            del store[(os.fspath(path), attribute)]
        except KeyError:
            raise OSError(errno.ENODATA, os.strerror(errno.ENODATA), os.fspath(path))

    with patch('os.getxattr', side_effect=getxattr, create=True), \
            patch('os.setxattr', side_effect=setxattr, create=True), \
            patch('os.removexattr', side_effect=removexattr, create=True):
        yield store


@pytest.fixture
def clean_env(monkeypatch):
    """Remove IMA_* environment variables for the duration of a test."""
    for name in list(os.environ):
        if name.startswith("IMA_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ===========================================================================
# Markers Registration
# ===========================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "security: Security-specific tests")
