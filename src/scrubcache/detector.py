"""Detection of PII spans against the pattern registry."""

import heapq
import logging
from typing import Iterator, Union

from scrubcache.exceptions import EncodingError
from scrubcache.models import ContentScope, DetectionMatch, PatternRule
from scrubcache.registry import PatternRegistry, coerce_scope

logger = logging.getLogger(__name__)


def ensure_text(text: Union[str, bytes]) -> str:
    """
    Return ``text`` as a ``str`` that is valid UTF-8.

    Raises:
        EncodingError: If bytes do not decode as UTF-8 or the string holds
            lone surrogates
        TypeError: If ``text`` is neither ``str`` nor bytes
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            return bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"Input is not valid UTF-8 (byte {e.start})") from e

    if not isinstance(text, str):
        raise TypeError(f"Expected text, got {type(text).__name__}")

    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(
            f"Input contains characters not encodable as UTF-8 (position {e.start})"
        ) from e
    return text


class Detector:
    """
    Scans text for PII using the rules of a PatternRegistry.

    Matches from different categories are reported independently, even when
    they cover the same characters.
    """

    def __init__(self, registry: PatternRegistry) -> None:
        self.registry = registry

    def detect(
        self,
        text: Union[str, bytes],
        scope: Union[ContentScope, str] = ContentScope.GENERAL,
    ) -> Iterator[DetectionMatch]:
        """
        Find PII spans in text.

        Scope and encoding are checked immediately; matching itself is lazy.

        Args:
            text: Text to scan
            scope: Content scope selecting which rules apply

        Returns:
            Iterator of matches ordered by start offset, then rule order

        Raises:
            InvalidScope: If ``scope`` is unknown
            EncodingError: If ``text`` is not valid UTF-8
        """
        scope = coerce_scope(scope)
        text = ensure_text(text)
        rules = self.registry.patterns_for_scope(scope)
        return self._merged_matches(text, rules)

    def contains_pii(
        self,
        text: Union[str, bytes],
        scope: Union[ContentScope, str] = ContentScope.GENERAL,
    ) -> bool:
        """Return True if at least one rule matches."""
        return next(self.detect(text, scope), None) is not None

    def _merged_matches(
        self, text: str, rules: tuple[PatternRule, ...]
    ) -> Iterator[DetectionMatch]:
        streams = [self._rule_matches(text, rule) for rule in rules]
        yield from heapq.merge(*streams, key=lambda m: (m.start, m.rule_order))

    @staticmethod
    def _rule_matches(text: str, rule: PatternRule) -> Iterator[DetectionMatch]:
        for regex_match in rule.matcher.finditer(text):
            start, end = regex_match.span()
            if start == end:
                continue
            yield DetectionMatch(
                category=rule.category,
                severity=rule.severity,
                start=start,
                end=end,
                rule_order=rule.order,
            )
