"""Tests for the privacy pipeline."""

import pytest

from scrubcache import AuditLog, PrivacyPipeline, Scrubber, SecureCache, load_registry
from scrubcache.metrics import render_metrics
from scrubcache.models import ContentScope

RESUME_WITH_PII = "Contact me at jane.doe@example.com or 555-123-4567"
CLEAN_RESUME = "Backend engineer with 8 years of Python and Go experience."
CLEAN_JOB = "We are hiring a senior backend engineer to build APIs."


@pytest.fixture
def audit():
    """Create audit log."""
    return AuditLog()


@pytest.fixture
def pipeline(audit):
    """Create a pipeline with a fresh cache."""
    return PrivacyPipeline(Scrubber(load_registry()), SecureCache(), audit=audit)


class Analyzer:
    """Records what the expensive step is called with."""

    def __init__(self):
        self.calls = []

    def __call__(self, resume, job):
        self.calls.append((resume, job))
        return {"score": len(self.calls)}


class TestPrepare:
    """Tests for prepare()."""

    def test_scopes(self, pipeline):
        """Test that each document is scrubbed with its own scope."""
        pair = pipeline.prepare(RESUME_WITH_PII, CLEAN_JOB)

        assert pair.resume.scope is ContentScope.RESUME
        assert pair.job.scope is ContentScope.JOB_DESCRIPTION

    def test_snapshot(self, pipeline):
        """Test severity snapshot of a pair."""
        pair = pipeline.prepare(RESUME_WITH_PII, CLEAN_JOB)
        snapshot = pair.snapshot

        assert snapshot.resume_had_critical is True
        assert snapshot.job_had_critical is False
        assert snapshot.total_pii_items == 2


class TestGetOrCompute:
    """Tests for get_or_compute()."""

    def test_compute_sees_only_redacted_text(self, pipeline):
        """Test that raw PII never reaches the analysis step."""
        analyzer = Analyzer()
        pipeline.get_or_compute(RESUME_WITH_PII, CLEAN_JOB, "analysis", analyzer)

        resume, job = analyzer.calls[0]
        assert "jane.doe@example.com" not in resume
        assert "[EMAIL_REDACTED]" in resume
        assert job == CLEAN_JOB

    def test_critical_pii_not_cached(self, pipeline):
        """Test that results derived from critical PII are recomputed."""
        analyzer = Analyzer()

        first = pipeline.get_or_compute(RESUME_WITH_PII, CLEAN_JOB, "analysis", analyzer)
        second = pipeline.get_or_compute(RESUME_WITH_PII, CLEAN_JOB, "analysis", analyzer)

        assert first.cached is False
        assert second.cache_hit is False
        assert len(analyzer.calls) == 2
        assert pipeline.cache.stats().entry_count == 0
        assert pipeline.cache.stats().refused_writes == 2

    def test_clean_pair_cached(self, pipeline):
        """Test that clean inputs are served from cache on repeat."""
        analyzer = Analyzer()

        first = pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", analyzer)
        second = pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", analyzer)

        assert first.cache_hit is False
        assert first.cached is True
        assert second.cache_hit is True
        assert second.payload == {"score": 1}
        assert len(analyzer.calls) == 1

    def test_cached_none_payload(self, pipeline):
        """Test that a cached None is still a hit."""
        calls = []

        def compute(resume, job):
            calls.append(1)
            return None

        pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", compute)
        outcome = pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", compute)

        assert outcome.cache_hit is True
        assert outcome.payload is None
        assert len(calls) == 1


class TestLookupStore:
    """Tests for the explicit lookup/store flow."""

    def test_store_and_lookup(self, pipeline):
        """Test a clean job description pair round trip."""
        pair = pipeline.prepare(CLEAN_RESUME, CLEAN_JOB)

        assert pipeline.lookup(pair, "analysis") is None
        assert pipeline.store(pair, "analysis", {"score": 80}) is True
        assert pipeline.lookup(pair, "analysis") == {"score": 80}

    def test_pii_variants_share_entry(self, pipeline):
        """Test that PII-only variance hits the same entry."""
        pair = pipeline.prepare("Python developer, Salary: 95000", CLEAN_JOB)
        pipeline.store(pair, "analysis", "result")

        variant = pipeline.prepare("Python developer, Salary: 120000", CLEAN_JOB)
        assert variant.resume.fingerprint == pair.resume.fingerprint
        assert pipeline.lookup(variant, "analysis") == "result"


class TestAuditAndMetrics:
    """Tests for audit and metrics side effects."""

    def test_audit_records_both_documents(self, pipeline, audit):
        """Test audit events for a refused write."""
        pipeline.get_or_compute(RESUME_WITH_PII, CLEAN_JOB, "analysis", Analyzer())

        events = audit.entries()
        assert [e.source_type for e in events] == ["job_description", "resume"]
        assert all(e.cached is False for e in events)
        assert audit.stats().cache_blocked_due_to_pii == 1

    def test_cache_hit_audited(self, pipeline, audit):
        """Test audit events for a cache hit."""
        pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", Analyzer())
        pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", Analyzer())

        assert len(audit) == 4
        assert all(e.cached for e in audit.entries())

    def test_single_scrub(self, pipeline, audit):
        """Test scrubbing one document through the pipeline."""
        result = pipeline.scrub("jane@example.com", source_type="cover_letter")

        assert result.redacted_text == "[EMAIL_REDACTED]"
        assert audit.entries()[0].source_type == "cover_letter"

    def test_without_audit(self):
        """Test that the audit log is optional."""
        pipeline = PrivacyPipeline(Scrubber(load_registry()), SecureCache())
        outcome = pipeline.get_or_compute(CLEAN_RESUME, CLEAN_JOB, "analysis", Analyzer())
        assert outcome.cached is True

    def test_metrics_exposed(self, pipeline):
        """Test that scrub and cache metrics are rendered."""
        pipeline.get_or_compute(RESUME_WITH_PII, CLEAN_JOB, "analysis", Analyzer())
        payload, content_type = render_metrics()
        text = payload.decode("utf-8")

        assert "scrubcache_scrub_total" in text
        assert 'scrubcache_pii_items_total{category="email"}' in text
        assert 'scrubcache_cache_writes_total{outcome="refused"}' in text
        assert content_type.startswith("text/plain")
        assert "jane.doe" not in text
