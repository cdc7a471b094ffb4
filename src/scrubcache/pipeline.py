"""Host-facing glue: scrub a document pair, consult the cache, record audit.

Typical request flow::

    pipeline = PrivacyPipeline(Scrubber(load_registry()), SecureCache())
    outcome = pipeline.get_or_compute(resume, job, "analysis", run_analysis)

``run_analysis`` only ever receives redacted text.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from scrubcache.audit import AuditEvent, AuditLog
from scrubcache.cache import SecureCache
from scrubcache.metrics import PII_ITEMS, SCRUB_COUNT, SCRUB_DURATION
from scrubcache.models import ContentScope, ScrubResult, SeveritySnapshot
from scrubcache.scrubber import Scrubber

logger = logging.getLogger(__name__)

Compute = Callable[[str, str], Any]


@dataclass(frozen=True)
class PreparedPair:
    """Scrub results for a resume and a job description."""

    resume: ScrubResult
    job: ScrubResult
    resume_duration_ms: float = 0.0
    job_duration_ms: float = 0.0

    @property
    def snapshot(self) -> SeveritySnapshot:
        return SeveritySnapshot.from_results(self.resume, self.job)


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of ``get_or_compute``."""

    payload: Any
    cache_hit: bool
    cached: bool
    pair: PreparedPair


class PrivacyPipeline:
    """Runs documents through the scrubber before any cache access."""

    def __init__(
        self,
        scrubber: Scrubber,
        cache: SecureCache,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self.scrubber = scrubber
        self.cache = cache
        self.audit = audit

    def scrub(
        self,
        text: Union[str, bytes],
        scope: Union[ContentScope, str] = ContentScope.GENERAL,
        source_type: Optional[str] = None,
    ) -> ScrubResult:
        """Scrub a single document and record it in the audit log."""
        result, duration_ms = self._timed_scrub(text, scope)
        self._record(result, cached=False, duration_ms=duration_ms, source_type=source_type)
        return result

    def prepare(self, resume_text: Union[str, bytes], job_text: Union[str, bytes]) -> PreparedPair:
        """Scrub a resume / job description pair with their own scopes."""
        resume, resume_ms = self._timed_scrub(resume_text, ContentScope.RESUME)
        job, job_ms = self._timed_scrub(job_text, ContentScope.JOB_DESCRIPTION)

        logger.info(
            "PII scrubbing completed",
            extra={
                "resume_items": resume.items_found,
                "resume_critical": resume.has_critical,
                "job_items": job.items_found,
                "job_critical": job.has_critical,
            },
        )
        return PreparedPair(resume, job, resume_ms, job_ms)

    def lookup(self, pair: PreparedPair, operation: str, default: Any = None) -> Any:
        """Return the cached payload for a prepared pair, or ``default``."""
        return self.cache.get(pair.resume.fingerprint, pair.job.fingerprint, operation, default)

    def store(
        self,
        pair: PreparedPair,
        operation: str,
        payload: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """Offer a payload to the cache and audit the outcome."""
        cached = self.cache.set(
            pair.resume.fingerprint,
            pair.job.fingerprint,
            operation,
            payload,
            pair.snapshot,
            ttl=ttl,
        )
        self._record_pair(pair, cached)
        return cached

    def get_or_compute(
        self,
        resume_text: Union[str, bytes],
        job_text: Union[str, bytes],
        operation: str,
        compute: Compute,
        ttl: Optional[int] = None,
    ) -> PipelineOutcome:
        """
        Serve from cache or compute on the redacted texts and offer the result.

        Concurrent misses for the same key each run ``compute``. A refused
        write does not affect the returned payload.

        Args:
            resume_text: Raw resume text
            job_text: Raw job description text
            operation: Discriminator for the cached operation
            compute: Called as ``compute(redacted_resume, redacted_job)`` on a miss
            ttl: Optional lifetime of the cached result

        Returns:
            PipelineOutcome with the payload and cache flags
        """
        pair = self.prepare(resume_text, job_text)

        missing = object()
        payload = self.lookup(pair, operation, default=missing)
        if payload is not missing:
            logger.info(f"Cache hit for operation {operation}")
            self._record_pair(pair, cached=True)
            return PipelineOutcome(payload=payload, cache_hit=True, cached=True, pair=pair)

        payload = compute(pair.resume.redacted_text, pair.job.redacted_text)
        cached = self.store(pair, operation, payload, ttl=ttl)
        logger.info(f"Cache miss for operation {operation}, stored={cached}")
        return PipelineOutcome(payload=payload, cache_hit=False, cached=cached, pair=pair)

    def _timed_scrub(
        self, text: Union[str, bytes], scope: Union[ContentScope, str]
    ) -> tuple[ScrubResult, float]:
        start_time = time.perf_counter()
        result = self.scrubber.scrub(text, scope)
        duration = time.perf_counter() - start_time

        SCRUB_COUNT.labels(scope=result.scope.value).inc()
        SCRUB_DURATION.labels(scope=result.scope.value).observe(duration)
        for category, count in result.category_counts.items():
            PII_ITEMS.labels(category=category.value).inc(count)

        return result, duration * 1000

    def _record_pair(self, pair: PreparedPair, cached: bool) -> None:
        self._record(pair.resume, cached, pair.resume_duration_ms)
        self._record(pair.job, cached, pair.job_duration_ms)

    def _record(
        self,
        result: ScrubResult,
        cached: bool,
        duration_ms: float,
        source_type: Optional[str] = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.record(
            AuditEvent.from_result(
                result, cached=cached, duration_ms=duration_ms, source_type=source_type
            )
        )
