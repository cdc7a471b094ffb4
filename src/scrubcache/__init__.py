"""
scrub-cache: PII scrubbing and a privacy-gated cache for document analysis.

Raw resumes and job descriptions are redacted before they reach an expensive
analysis step, and the analysis results are only cached when the documents
behind them carried no critical PII.
"""

__version__ = "0.1.0"

from scrubcache.audit import AuditEvent, AuditLog, AuditStats
from scrubcache.cache import CachePolicy, SecureCache
from scrubcache.config import ScrubCacheConfig, build_pipeline, load_config, load_config_file
from scrubcache.detector import Detector
from scrubcache.exceptions import (
    ConfigurationError,
    EncodingError,
    InvalidScope,
    PatternLoadError,
    ScrubCacheError,
)
from scrubcache.hashing import Fingerprint, cache_key
from scrubcache.models import (
    CacheStats,
    Category,
    ContentScope,
    DetectionMatch,
    ScrubResult,
    Severity,
    SeveritySnapshot,
)
from scrubcache.pipeline import PipelineOutcome, PreparedPair, PrivacyPipeline
from scrubcache.registry import PatternRegistry, load_registry
from scrubcache.scrubber import Scrubber

__all__ = [
    "AuditEvent",
    "AuditLog",
    "AuditStats",
    "CachePolicy",
    "CacheStats",
    "Category",
    "ConfigurationError",
    "ContentScope",
    "DetectionMatch",
    "Detector",
    "EncodingError",
    "Fingerprint",
    "InvalidScope",
    "PatternLoadError",
    "PatternRegistry",
    "PipelineOutcome",
    "PreparedPair",
    "PrivacyPipeline",
    "ScrubCacheConfig",
    "ScrubCacheError",
    "ScrubResult",
    "Scrubber",
    "SecureCache",
    "Severity",
    "SeveritySnapshot",
    "build_pipeline",
    "cache_key",
    "load_config",
    "load_config_file",
    "load_registry",
]
