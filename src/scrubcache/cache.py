"""In-memory cache for analysis results derived from scrubbed documents.

Keys are built from the fingerprints of *redacted* text, and every write is
checked against the severity snapshot of the inputs that produced it. An
artifact whose provenance carried critical PII is never stored.
"""

import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from scrubcache.hashing import Fingerprint, cache_key
from scrubcache.metrics import CACHE_EVICTIONS, CACHE_REQUESTS, CACHE_WRITES
from scrubcache.models import CacheEntry, CacheStats, SeveritySnapshot

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_ENTRIES = 500
DEFAULT_MAX_PII_BUDGET = 10
DEFAULT_KEY_PREFIX = "scrubcache"


@dataclass(frozen=True)
class CachePolicy:
    """Decides whether an artifact may be cached given its provenance."""

    max_pii_budget: int = DEFAULT_MAX_PII_BUDGET

    def refusal_reason(self, snapshot: SeveritySnapshot) -> Optional[str]:
        """Return why a write must be refused, or None if it is allowed."""
        if snapshot.resume_had_critical:
            return "resume contained critical PII"
        if snapshot.job_had_critical:
            return "job description contained critical PII"
        if snapshot.total_pii_items > self.max_pii_budget:
            return (
                f"{snapshot.total_pii_items} PII items exceed budget of "
                f"{self.max_pii_budget}"
            )
        return None

    def allows(self, snapshot: SeveritySnapshot) -> bool:
        """Return True if an artifact with this provenance may be cached."""
        return self.refusal_reason(snapshot) is None


class SecureCache:
    """
    Capacity- and TTL-bounded cache keyed by scrubbed-content fingerprints.

    All access goes through a single lock. Two callers that miss on the same
    key concurrently will both compute and both write; the last write wins.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        policy: Optional[CachePolicy] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize cache.

        Args:
            ttl_seconds: Default lifetime of an entry
            max_entries: Capacity; the oldest entry is evicted beyond it
            policy: Write policy, defaults to ``CachePolicy()``
            key_prefix: Namespace mixed into every key
            clock: Source of the current time in seconds
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.policy = policy or CachePolicy()
        self.key_prefix = key_prefix
        self._clock = clock

        # Insertion order is creation order; overwrites re-insert at the end.
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._refused = 0
        self._evictions = 0

    def key_for(self, fingerprint_a: Fingerprint, fingerprint_b: Fingerprint, operation: str) -> str:
        """Return the cache key for a fingerprint pair and operation."""
        return cache_key(fingerprint_a, fingerprint_b, operation, prefix=self.key_prefix)

    def get(
        self,
        fingerprint_a: Fingerprint,
        fingerprint_b: Fingerprint,
        operation: str,
        default: Any = None,
    ) -> Any:
        """
        Look up a cached payload.

        Expired entries are removed and reported as a miss.

        Returns:
            The cached payload, or ``default`` on a miss
        """
        key = self.key_for(fingerprint_a, fingerprint_b, operation)

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None:
                self._misses += 1
                CACHE_REQUESTS.labels(result="miss").inc()
                return default

            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                self._evictions += 1
                CACHE_REQUESTS.labels(result="expired").inc()
                CACHE_EVICTIONS.labels(reason="expired").inc()
                return default

            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            CACHE_REQUESTS.labels(result="hit").inc()
            return entry.payload

    def set(
        self,
        fingerprint_a: Fingerprint,
        fingerprint_b: Fingerprint,
        operation: str,
        payload: Any,
        severity_snapshot: SeveritySnapshot,
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Store a payload if its provenance passes the cache policy.

        A refused write is a normal outcome: nothing is stored and False is
        returned.

        Args:
            fingerprint_a: Fingerprint of the first scrubbed document
            fingerprint_b: Fingerprint of the second scrubbed document
            operation: Discriminator for the cached operation
            payload: Analysis result to cache
            severity_snapshot: PII findings of the documents behind the payload
            ttl: Lifetime in seconds, defaults to the cache TTL

        Returns:
            True if the payload was stored
        """
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        key = self.key_for(fingerprint_a, fingerprint_b, operation)

        reason = self.policy.refusal_reason(severity_snapshot)
        if reason is not None:
            with self._lock:
                self._refused += 1
            CACHE_WRITES.labels(outcome="refused").inc()
            logger.info(f"Cache write refused for operation {operation}: {reason}")
            return False

        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)

            while len(self._entries) >= self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                CACHE_EVICTIONS.labels(reason="capacity").inc()
                logger.debug(f"Evicted oldest cache entry {evicted_key}")

            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                created_at=now,
                expires_at=now + (ttl or self.ttl_seconds),
                source_severity_snapshot=severity_snapshot,
                last_accessed=now,
            )

        CACHE_WRITES.labels(outcome="accepted").inc()
        return True

    def has(self, fingerprint_a: Fingerprint, fingerprint_b: Fingerprint, operation: str) -> bool:
        """Return True if a live entry exists. Does not count as a hit or miss."""
        key = self.key_for(fingerprint_a, fingerprint_b, operation)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._evictions += 1
                CACHE_EVICTIONS.labels(reason="expired").inc()
                return False
            return True

    def delete(self, fingerprint_a: Fingerprint, fingerprint_b: Fingerprint, operation: str) -> bool:
        """Invalidate one entry. Returns True if it existed."""
        key = self.key_for(fingerprint_a, fingerprint_b, operation)

        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._refused = 0
            self._evictions = 0

    def cleanup(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)

        if expired:
            CACHE_EVICTIONS.labels(reason="expired").inc(len(expired))
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def stats(self) -> CacheStats:
        """Return hit/miss counts and size estimates."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests else 0.0
            memory = sum(_approx_size(e) for e in self._entries.values())

            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                hit_rate=round(hit_rate, 2),
                entry_count=len(self._entries),
                approx_memory_bytes=memory,
                refused_writes=self._refused,
                evictions=self._evictions,
            )

    def entries(self) -> list[dict[str, Any]]:
        """Return entry metadata, most recently accessed first. Payloads are omitted."""
        with self._lock:
            snapshot = [
                {
                    "key": e.key,
                    "created_at": e.created_at,
                    "expires_at": e.expires_at,
                    "access_count": e.access_count,
                    "last_accessed": e.last_accessed,
                    "resume_had_critical": e.source_severity_snapshot.resume_had_critical,
                    "job_had_critical": e.source_severity_snapshot.job_had_critical,
                    "total_pii_items": e.source_severity_snapshot.total_pii_items,
                }
                for e in self._entries.values()
            ]
        return sorted(snapshot, key=lambda e: e["last_accessed"], reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"SecureCache(entries={len(self)}, max_entries={self.max_entries})"


def _approx_size(entry: CacheEntry) -> int:
    """Rough in-memory footprint: serialized size at two bytes per character."""
    serialized = json.dumps(entry.payload, default=str)
    return (len(serialized) + len(entry.key)) * 2
