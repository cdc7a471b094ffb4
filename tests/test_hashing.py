"""Tests for fingerprints and cache keys."""

import hashlib

import pytest

from scrubcache.hashing import (
    CACHE_KEY_LENGTH,
    FINGERPRINT_LENGTH,
    Fingerprint,
    cache_key,
    generate_hash,
)


class TestGenerateHash:
    """Tests for generate_hash()."""

    def test_full_digest(self):
        """Test untruncated SHA-256."""
        assert generate_hash("abc") == hashlib.sha256(b"abc").hexdigest()

    def test_truncated(self):
        """Test truncation to a prefix."""
        assert generate_hash("abc", 16) == hashlib.sha256(b"abc").hexdigest()[:16]


class TestFingerprint:
    """Tests for Fingerprint."""

    def test_of_redacted(self):
        """Test fingerprint of redacted text."""
        fp = Fingerprint.of_redacted("Contact me at [EMAIL_REDACTED]")

        assert len(fp.digest) == FINGERPRINT_LENGTH
        assert str(fp) == fp.digest

    def test_equal_text_equal_fingerprint(self):
        """Test value equality and hashability."""
        a = Fingerprint.of_redacted("same")
        b = Fingerprint.of_redacted("same")

        assert a == b
        assert len({a, b}) == 1

    def test_malformed_digest(self):
        """Test that arbitrary strings cannot pose as fingerprints."""
        with pytest.raises(ValueError):
            Fingerprint.from_digest("jane@example.com")
        with pytest.raises(ValueError):
            Fingerprint.from_digest("A" * FINGERPRINT_LENGTH)

    def test_constructor_is_private(self):
        """Test that only the factories build fingerprints."""
        with pytest.raises(TypeError):
            Fingerprint("0" * FINGERPRINT_LENGTH)
        with pytest.raises(TypeError):
            Fingerprint(generate_hash("jane@example.com", FINGERPRINT_LENGTH))

    def test_from_digest_restores(self):
        """Test restoring a stored digest."""
        fp = Fingerprint.of_redacted("Call [PHONE_REDACTED]")
        restored = Fingerprint.from_digest(str(fp))

        assert restored == fp
        assert hash(restored) == hash(fp)
        assert cache_key(restored, restored, "match") == cache_key(fp, fp, "match")

    def test_immutable(self):
        """Test that fingerprints are frozen."""
        fp = Fingerprint.of_redacted("text")
        with pytest.raises(AttributeError):
            fp.digest = "0" * FINGERPRINT_LENGTH


class TestCacheKey:
    """Tests for cache_key()."""

    def test_stable(self):
        """Test that equal inputs produce equal keys."""
        a = Fingerprint.of_redacted("resume")
        b = Fingerprint.of_redacted("job")

        assert cache_key(a, b, "analysis") == cache_key(a, b, "analysis")
        assert len(cache_key(a, b, "analysis")) == CACHE_KEY_LENGTH

    def test_components_matter(self):
        """Test that order, operation and prefix change the key."""
        a = Fingerprint.of_redacted("resume")
        b = Fingerprint.of_redacted("job")
        key = cache_key(a, b, "analysis")

        assert cache_key(b, a, "analysis") != key
        assert cache_key(a, b, "summary") != key
        assert cache_key(a, b, "analysis", prefix="tenant-1") != key

    def test_rejects_raw_strings(self):
        """Test that raw text cannot be used to build a key."""
        fp = Fingerprint.of_redacted("job")
        with pytest.raises(TypeError):
            cache_key("Jane Doe, 555-123-4567", fp, "analysis")
        with pytest.raises(TypeError):
            cache_key(fp, fp.digest, "analysis")
