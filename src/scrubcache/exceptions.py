"""Exception hierarchy for scrub-cache.

Refused cache writes and "no PII found" are normal outcomes and are not
represented here.
"""


class ScrubCacheError(Exception):
    """Base exception for all scrub-cache errors."""


class InvalidScope(ScrubCacheError, ValueError):
    """Raised when a content scope is not one of the known scopes."""


class EncodingError(ScrubCacheError, ValueError):
    """Raised when input is not valid UTF-8 text."""


class PatternLoadError(ScrubCacheError, ValueError):
    """Raised when a pattern file fails to load or validate."""


class ConfigurationError(ScrubCacheError, ValueError):
    """Raised when host configuration is invalid."""
