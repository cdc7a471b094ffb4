"""Prometheus metrics for scrubbing and caching.

Labels carry categories and outcomes only, never document content.
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

SCRUB_COUNT = Counter(
    "scrubcache_scrub_total",
    "Total documents scrubbed",
    ["scope"],
)
SCRUB_DURATION = Histogram(
    "scrubcache_scrub_duration_seconds",
    "Scrub duration in seconds",
    ["scope"],
)
PII_ITEMS = Counter(
    "scrubcache_pii_items_total",
    "Total PII items redacted",
    ["category"],
)
CACHE_REQUESTS = Counter(
    "scrubcache_cache_requests_total",
    "Cache lookups",
    ["result"],
)
CACHE_WRITES = Counter(
    "scrubcache_cache_writes_total",
    "Cache write attempts",
    ["outcome"],
)
CACHE_EVICTIONS = Counter(
    "scrubcache_cache_evictions_total",
    "Entries removed from the cache",
    ["reason"],
)


def render_metrics() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
