"""Stable one-way hashing for fingerprints and cache keys."""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Optional

HASH_ALGORITHM = "sha256"

# 16 bytes, hex encoded
FINGERPRINT_LENGTH = 32
CACHE_KEY_LENGTH = 32

_HEX_DIGEST = re.compile(r"[0-9a-f]+")

# Passed by the Fingerprint factories; the bare constructor refuses to run without it.
_FACTORY = object()


def generate_hash(content: str, length: Optional[int] = None) -> str:
    """
    Hash content with SHA-256.

    Args:
        content: Text to hash (encoded as UTF-8)
        length: Optional number of hex characters to keep

    Returns:
        Hex digest, truncated to ``length`` if given
    """
    digest = hashlib.new(HASH_ALGORITHM, content.encode("utf-8")).hexdigest()
    return digest[:length] if length else digest


@dataclass(frozen=True)
class Fingerprint:
    """Digest of already-redacted text.

    Instances come only from the two factories. :meth:`of_redacted` hashes
    text the scrubber has finished redacting, so a fingerprint never covers
    raw PII. :meth:`from_digest` restores a digest that ``of_redacted``
    produced earlier, for example one read back from storage. Calling
    ``Fingerprint(...)`` directly raises ``TypeError``.
    """

    digest: str
    _factory: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._factory is not _FACTORY:
            raise TypeError(
                "Fingerprint is built with Fingerprint.of_redacted() or Fingerprint.from_digest()"
            )
        if len(self.digest) != FINGERPRINT_LENGTH or not _HEX_DIGEST.fullmatch(
            self.digest
        ):
            raise ValueError(f"Malformed fingerprint digest: {self.digest!r}")

    @classmethod
    def of_redacted(cls, redacted_text: str) -> "Fingerprint":
        """Fingerprint redacted text."""
        return cls(generate_hash(redacted_text, FINGERPRINT_LENGTH), _FACTORY)

    @classmethod
    def from_digest(cls, digest: str) -> "Fingerprint":
        """Restore a fingerprint from its hex digest.

        Raises:
            ValueError: If ``digest`` is not 32 lowercase hex characters
        """
        return cls(digest, _FACTORY)

    def __str__(self) -> str:
        return self.digest


def cache_key(
    fingerprint_a: Fingerprint,
    fingerprint_b: Fingerprint,
    operation: str,
    prefix: str = "",
) -> str:
    """
    Derive a cache key from two fingerprints and an operation discriminator.

    Args:
        fingerprint_a: Fingerprint of the first scrubbed document
        fingerprint_b: Fingerprint of the second scrubbed document
        operation: Name of the operation whose result is cached
        prefix: Optional namespace for the key

    Returns:
        Hex cache key

    Raises:
        TypeError: If either fingerprint is not a ``Fingerprint``
    """
    for fp in (fingerprint_a, fingerprint_b):
        if not isinstance(fp, Fingerprint):
            raise TypeError(
                f"Cache keys are built from Fingerprint objects, got {type(fp).__name__}"
            )

    components = [fingerprint_a.digest, fingerprint_b.digest, operation]
    base_key = ":".join(components)
    if prefix:
        base_key = f"{prefix}:{base_key}"
    return generate_hash(base_key, CACHE_KEY_LENGTH)
