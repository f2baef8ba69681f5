"""
Tests for the Keys module.

Tests key id derivation, the key pool and PEM loading.
"""

import hashlib
import os
import sys
import threading

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from conftest import write_public_pem
from ima.errors import FormatError, UnsupportedKeyFormat
from ima.hashes import HashAlgorithm
from ima.keys import (
    KeyPool,
    LockedKeyPool,
    PublicKey,
    RsaPublicKey,
    RsaSigner,
    as_public_key,
    as_signer,
    format_key_id,
    load_key_pool,
    load_public_keys,
    load_signer,
    public_key_id,
)


class FixedIdKey(PublicKey):
    """Test key with a chosen key id."""

    def __init__(self, key_id: bytes):
        self._key_id = key_id

    def key_id(self) -> bytes:
        return self._key_id

    def verify(self, signature, digest, algorithm):
        pass


# ===========================================================================
# Key Id Tests
# ===========================================================================

class TestPublicKeyId:
    """Tests for key id derivation."""

    def test_key_id_is_tail_of_sha1_over_pkcs1_der(self, rsa_key):
        """Key id should be bytes 16..20 of SHA-1 over the PKCS#1 DER key."""
        der = rsa_key.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.PKCS1,
        )
        expected = hashlib.sha1(der).digest()[16:20]
        assert public_key_id(rsa_key.public_key()) == expected

    def test_key_id_length(self, rsa_key):
        assert len(public_key_id(rsa_key.public_key())) == 4

    def test_key_id_deterministic(self, rsa_key):
        public = rsa_key.public_key()
        assert public_key_id(public) == public_key_id(public)
        assert public_key_id(public) == RsaPublicKey(public).key_id()

    def test_distinct_keys_distinct_ids(self, rsa_key, other_rsa_key):
        assert public_key_id(rsa_key.public_key()) != public_key_id(other_rsa_key.public_key())

    def test_non_rsa_rejected(self):
        """Ed25519 and EC keys should raise UnsupportedKeyFormat."""
        with pytest.raises(UnsupportedKeyFormat):
            public_key_id(ed25519.Ed25519PrivateKey.generate().public_key())
        with pytest.raises(UnsupportedKeyFormat):
            public_key_id(ec.generate_private_key(ec.SECP256R1()).public_key())

    def test_private_key_rejected(self, rsa_key):
        """Only public keys are identified."""
        with pytest.raises(UnsupportedKeyFormat):
            public_key_id(rsa_key)

    def test_format_key_id(self):
        assert format_key_id(b"\xdb\x1f\xf7\x2a") == "db1ff72a"


class TestCanonicalKeys:
    """Tests for the key wrappers."""

    def test_as_public_key_passthrough(self):
        key = FixedIdKey(b"\x00\x00\x00\x01")
        assert as_public_key(key) is key

    def test_wrapped_key_equality(self, rsa_key, other_rsa_key):
        public = rsa_key.public_key()
        assert RsaPublicKey(public) == RsaPublicKey(public)
        assert RsaPublicKey(public) == public
        assert RsaPublicKey(public) != RsaPublicKey(other_rsa_key.public_key())
        assert hash(RsaPublicKey(public)) == hash(RsaPublicKey(public))

    def test_as_signer(self, rsa_key):
        signer = as_signer(rsa_key)
        assert isinstance(signer, RsaSigner)
        assert signer.public_key() == rsa_key.public_key()

    def test_as_signer_rejects_non_rsa(self):
        with pytest.raises(UnsupportedKeyFormat):
            as_signer(ed25519.Ed25519PrivateKey.generate())

    def test_signer_rejects_wrong_digest_length(self, rsa_key):
        with pytest.raises(ValueError):
            RsaSigner(rsa_key).sign(b"\x00" * 20, HashAlgorithm.SHA256)


# ===========================================================================
# Key Pool Tests
# ===========================================================================

class TestKeyPool:
    """Tests for KeyPool."""

    def test_empty_then_added(self, rsa_key):
        """A fresh pool should not contain the key until it is added."""
        public = rsa_key.public_key()
        key_id = public_key_id(public)
        pool = KeyPool()

        assert pool.maybe_contains(public) is False
        assert pool.get(key_id) == []

        pool.add(public)

        assert pool.maybe_contains(public) is True
        candidates = pool.get(key_id)
        assert len(candidates) == 1
        assert candidates[0] == public

    def test_get_unknown_id_is_empty(self):
        assert KeyPool().get(b"\x01\x02\x03\x04") == []

    def test_duplicates_kept(self, rsa_key):
        """Adding the same key twice keeps both entries."""
        pool = KeyPool()
        pool.add(rsa_key.public_key())
        pool.add(rsa_key.public_key())
        assert len(pool.get(public_key_id(rsa_key.public_key()))) == 2
        assert len(pool) == 2

    def test_collisions_keep_insertion_order(self):
        """Keys sharing an id land in one bucket, in insertion order."""
        first = FixedIdKey(b"\xaa\xbb\xcc\xdd")
        second = FixedIdKey(b"\xaa\xbb\xcc\xdd")
        other = FixedIdKey(b"\x11\x22\x33\x44")
        pool = KeyPool()
        for key in (first, other, second):
            pool.add(key)

        bucket = pool.get(b"\xaa\xbb\xcc\xdd")
        assert bucket[0] is first
        assert bucket[1] is second
        assert len(bucket) == 2
        assert sorted(pool.key_ids()) == [b"\x11\x22\x33\x44", b"\xaa\xbb\xcc\xdd"]

    def test_maybe_contains_is_a_filter(self):
        """A different key with the same id is reported as maybe contained."""
        pool = KeyPool()
        pool.add(FixedIdKey(b"\x01\x01\x01\x01"))
        assert pool.maybe_contains(FixedIdKey(b"\x01\x01\x01\x01")) is True

    def test_maybe_contains_unsupported_key(self):
        pool = KeyPool()
        assert pool.maybe_contains(ed25519.Ed25519PrivateKey.generate().public_key()) is False

    def test_add_unsupported_key(self):
        with pytest.raises(UnsupportedKeyFormat):
            KeyPool().add(ed25519.Ed25519PrivateKey.generate().public_key())

    def test_get_returns_copy(self, rsa_key):
        pool = KeyPool()
        pool.add(rsa_key.public_key())
        key_id = public_key_id(rsa_key.public_key())
        pool.get(key_id).clear()
        assert len(pool.get(key_id)) == 1

    def test_iteration(self, rsa_key, other_rsa_key):
        pool = KeyPool()
        pool.add(rsa_key.public_key())
        pool.add(other_rsa_key.public_key())
        assert list(pool) == [rsa_key.public_key(), other_rsa_key.public_key()]


class TestLockedKeyPool:
    """Tests for the lock-guarded pool."""

    def test_concurrent_adds(self):
        """Concurrent adds from several threads should all land."""
        pool = LockedKeyPool()

        def worker(n):
            for i in range(50):
                pool.add(FixedIdKey(bytes([n, 0, 0, i % 4])))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(pool) == 400
        assert len(pool.get(bytes([3, 0, 0, 1]))) == 13
        assert len(list(pool)) == 400

    def test_behaves_like_key_pool(self, rsa_key):
        pool = LockedKeyPool()
        assert pool.maybe_contains(rsa_key.public_key()) is False
        pool.add(rsa_key.public_key())
        assert pool.maybe_contains(rsa_key.public_key()) is True
        assert len(pool.get(public_key_id(rsa_key.public_key()))) == 1


# ===========================================================================
# PEM Loading Tests
# ===========================================================================

class TestPemLoading:
    """Tests for PEM bundle and private key loading."""

    def test_load_bundle(self, temp_dir, rsa_key, other_rsa_key):
        path = write_public_pem(temp_dir / "bundle.pem",
                                rsa_key.public_key(), other_rsa_key.public_key())
        keys = load_public_keys(path)
        assert len(keys) == 2

        pool = load_key_pool(path)
        assert pool.maybe_contains(rsa_key.public_key())
        assert pool.maybe_contains(other_rsa_key.public_key())

    def test_load_pkcs1_public_key(self, temp_dir, rsa_key):
        """RSA PUBLIC KEY blocks should be accepted."""
        path = temp_dir / "pkcs1.pem"
        path.write_bytes(rsa_key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.PKCS1,
        ))
        pool = load_key_pool(path)
        assert len(pool) == 1

    def test_load_into_existing_pool(self, pubkey_pem, other_rsa_key):
        pool = KeyPool()
        pool.add(other_rsa_key.public_key())
        assert load_key_pool(pubkey_pem, pool) is pool
        assert len(pool) == 2

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.pem"
        path.write_bytes(b"")
        with pytest.raises(FormatError):
            load_public_keys(path)

    def test_malformed_block(self, temp_dir):
        path = temp_dir / "bad.pem"
        path.write_bytes(b"-----BEGIN PUBLIC KEY-----\nnot base64!\n-----END PUBLIC KEY-----\n")
        with pytest.raises(FormatError):
            load_public_keys(path)

    def test_unexpected_block(self, temp_dir, rsa_key):
        path = temp_dir / "private.pem"
        path.write_bytes(rsa_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
        with pytest.raises(FormatError):
            load_public_keys(path)

    def test_non_rsa_bundle_rejected_by_pool(self, temp_dir):
        path = write_public_pem(temp_dir / "ed.pem",
                                ed25519.Ed25519PrivateKey.generate().public_key())
        assert len(load_public_keys(path)) == 1
        with pytest.raises(UnsupportedKeyFormat):
            load_key_pool(path)

    def test_missing_file(self, temp_dir):
        with pytest.raises(OSError):
            load_public_keys(temp_dir / "missing.pem")

    def test_load_signer(self, privkey_pem, rsa_key):
        signer = load_signer(privkey_pem)
        assert signer.public_key() == rsa_key.public_key()

    def test_load_signer_garbage(self, temp_dir):
        path = temp_dir / "garbage.pem"
        path.write_bytes(b"garbage")
        with pytest.raises(FormatError):
            load_signer(path)

    def test_load_signer_non_rsa(self, temp_dir):
        path = temp_dir / "ed.key"
        path.write_bytes(ed25519.Ed25519PrivateKey.generate().private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
        with pytest.raises(UnsupportedKeyFormat):
            load_signer(path)
