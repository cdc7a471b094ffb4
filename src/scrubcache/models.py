"""Data models for scrub-cache."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional
from enum import Enum

from scrubcache.hashing import Fingerprint


class Category(str, Enum):
    """PII category types."""

    EMAIL = "email"
    PHONE = "phone"
    SSN = "ssn"
    CREDIT_CARD = "credit_card"
    STREET_ADDRESS = "street_address"
    POSTAL_CODE = "postal_code"
    IP_ADDRESS = "ip_address"
    CREDENTIALS = "credentials"
    DATE_OF_BIRTH = "date_of_birth"
    MEDICAL_RECORD = "medical_record"
    INTERNAL_ID = "internal_id"
    NAME = "name"
    SOCIAL_HANDLE = "social_handle"
    PERSONAL_WEBSITE = "personal_website"
    FINANCIAL_AMOUNT = "financial_amount"
    DRIVER_LICENSE = "driver_license"
    GENERIC_SECRET_URL = "generic_secret_url"


class Severity(str, Enum):
    """Severity level of a PII category.

    Only ``critical`` findings block caching; ``informational`` is cosmetic.
    """

    CRITICAL = "critical"
    MODERATE = "moderate"
    INFORMATIONAL = "informational"

    @property
    def rank(self) -> int:
        """Return a sortable rank, higher is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFORMATIONAL: 0,
    Severity.MODERATE: 1,
    Severity.CRITICAL: 2,
}


class ContentScope(str, Enum):
    """Document type a text belongs to, selecting the applicable rules."""

    RESUME = "resume"
    JOB_DESCRIPTION = "job_description"
    GENERAL = "general"


@dataclass(frozen=True)
class Examples:
    """Pattern validation examples."""

    match: tuple[str, ...] = ()
    nomatch: tuple[str, ...] = ()


@dataclass(frozen=True)
class PatternRule:
    """Compiled detection rule for a single category."""

    category: Category
    pattern: str
    matcher: Any  # re.Pattern
    severity: Severity
    replacement_label: str
    order: int
    description: str = ""
    flags: tuple[str, ...] = ()
    examples: Optional[Examples] = None

    @property
    def is_critical(self) -> bool:
        """Return True if a match of this rule blocks caching."""
        return self.severity is Severity.CRITICAL


@dataclass(frozen=True)
class DetectionMatch:
    """Position and classification of one detected span.

    The matched substring itself is never kept; only where it was and what
    it looked like.
    """

    category: Category
    severity: Severity
    start: int
    end: int
    rule_order: int

    @property
    def span(self) -> tuple[int, int]:
        """Return (start, end) tuple."""
        return (self.start, self.end)

    @property
    def raw_span_length(self) -> int:
        """Return the length of the matched span."""
        return self.end - self.start

    def overlaps(self, other: "DetectionMatch") -> bool:
        """Return True if the two spans share at least one character."""
        return not (self.end <= other.start or other.end <= self.start)


@dataclass(frozen=True)
class ScrubResult:
    """Result of scrubbing one document."""

    redacted_text: str
    fingerprint: Fingerprint
    scope: ContentScope
    original_length: int
    items_found: int = 0
    category_counts: Mapping[Category, int] = field(
        default_factory=lambda: MappingProxyType({})
    )
    has_critical: bool = False
    highest_severity: Optional[Severity] = None

    @property
    def categories_found(self) -> frozenset[Category]:
        """Return the set of categories with at least one finding."""
        return frozenset(self.category_counts)

    @property
    def redacted_length(self) -> int:
        """Return the length of the redacted text."""
        return len(self.redacted_text)

    @property
    def has_pii(self) -> bool:
        """Return True if anything was redacted."""
        return self.items_found > 0


@dataclass(frozen=True)
class SeveritySnapshot:
    """Worst-case PII findings across the inputs of a cached artifact."""

    resume_had_critical: bool = False
    job_had_critical: bool = False
    total_pii_items: int = 0

    @classmethod
    def from_results(
        cls, resume: ScrubResult, job: ScrubResult
    ) -> "SeveritySnapshot":
        """Build a snapshot from the scrub results of a resume/job pair."""
        return cls(
            resume_had_critical=resume.has_critical,
            job_had_critical=job.has_critical,
            total_pii_items=resume.items_found + job.items_found,
        )

    @property
    def has_critical(self) -> bool:
        """Return True if either input carried critical PII."""
        return self.resume_had_critical or self.job_had_critical


@dataclass
class CacheEntry:
    """Single cache entry. Owned exclusively by ``SecureCache``."""

    key: str
    payload: Any
    created_at: float
    expires_at: float
    source_severity_snapshot: SeveritySnapshot
    access_count: int = 0
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        """Return True if the entry is past its expiry time."""
        return self.expires_at < now


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics."""

    hits: int
    misses: int
    hit_rate: float
    entry_count: int
    approx_memory_bytes: int
    refused_writes: int = 0
    evictions: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return stats as a plain dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "entry_count": self.entry_count,
            "approx_memory_bytes": self.approx_memory_bytes,
            "refused_writes": self.refused_writes,
            "evictions": self.evictions,
        }
