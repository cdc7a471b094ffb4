"""Deterministic redaction of detected PII."""

import bisect
import logging
import re
from collections import Counter
from types import MappingProxyType
from typing import Iterable, Optional, Union

from scrubcache.detector import Detector, ensure_text
from scrubcache.exceptions import ConfigurationError
from scrubcache.hashing import Fingerprint
from scrubcache.models import (
    Category,
    ContentScope,
    DetectionMatch,
    ScrubResult,
    Severity,
)
from scrubcache.registry import PatternRegistry, coerce_scope

logger = logging.getLogger(__name__)

REFERENCES_SECTION_LABEL = "[REFERENCES_SECTION_REDACTED]"
PERSONAL_SECTION_LABEL = "[PERSONAL_SECTION_REDACTED]"
HIRING_MANAGER_LABEL = "[HIRING_MANAGER_REDACTED]"

# Header line of a resume section; the section runs to the next blank line.
_SECTION_HEADER = re.compile(
    r"^[ \t]*(?:(?P<references>references?)"
    r"|(?P<personal>personal(?:[ \t]+(?:information|details|statement))?|about[ \t]+me))"
    r"[ \t]*(?::|$)",
    re.IGNORECASE | re.MULTILINE,
)
_SECTION_BREAK = re.compile(r"\n[ \t]*\n")

# "Hiring Manager: Jane Q. Smith", "Engineering Manager: Jane Smith",
# "Reports to Jane Smith", "please contact Jane Smith for details"
_CONTACT_FIELD = re.compile(
    r"(?P<field>\b(?:(?i:hiring[ \t]+manager|manager|supervisor)[ \t]*:"
    r"|(?i:contact|reports[ \t]+to)[ \t]*:?)[ \t]*)"
    r"(?P<name>[A-Z][a-z]+(?:[ \t]+[A-Z]\.)?[ \t]+[A-Z][a-z]+(?:-[A-Z][a-z]+)?)\b"
)

# Upper bound on redaction passes; each pass shrinks the unredacted text.
MAX_SCRUB_PASSES = 8

_TRAILING_SPACE = re.compile(r"[ \t]+$", re.MULTILINE)
_SPACE_RUN = re.compile(r"(?<=\S)[ \t]{2,}")
_BLANK_LINES = re.compile(r"\n{3,}")


class Scrubber:
    """
    Rewrites text so that no detected PII survives.

    Overlapping matches are resolved in favour of the rule declared earlier
    in the registry. Redaction passes repeat until one finds nothing. The fingerprint of a result is always taken over the
    final redacted text.
    """

    def __init__(
        self,
        registry: PatternRegistry,
        masking: bool = True,
        mask_char: str = "*",
    ) -> None:
        """
        Initialize scrubber.

        Args:
            registry: PatternRegistry with loaded rules
            masking: Replace matches with their category label if True,
                remove them entirely if False
            mask_char: Fill character for display masking
        """
        if len(mask_char) != 1:
            raise ConfigurationError(f"mask_char must be a single character, got {mask_char!r}")

        self.registry = registry
        self.detector = Detector(registry)
        self.masking = masking
        self.mask_char = mask_char

    def scrub(
        self,
        text: Union[str, bytes],
        scope: Union[ContentScope, str] = ContentScope.GENERAL,
    ) -> ScrubResult:
        """
        Redact PII from text.

        Args:
            text: Text to scrub
            scope: Content scope of the document

        Returns:
            ScrubResult with redacted text, counts and fingerprint

        Raises:
            InvalidScope: If ``scope`` is unknown
            EncodingError: If ``text`` is not valid UTF-8
        """
        scope = coerce_scope(scope)
        text = ensure_text(text)

        # Redaction can expose new matches (a credential key left in front of
        # a label, text joined across a removed span), so passes repeat until
        # one finds nothing.
        redacted = text
        counts: Counter = Counter()
        severities: set[Severity] = set()
        for _ in range(MAX_SCRUB_PASSES):
            redacted = collapse_whitespace(redacted)
            redacted, pass_counts, pass_severities = self._scrub_pass(redacted, scope)
            if not pass_counts:
                break
            counts.update(pass_counts)
            severities |= pass_severities
        else:
            logger.warning(
                f"Scrubbing {scope.value} text did not settle after {MAX_SCRUB_PASSES} passes"
            )

        redacted = collapse_whitespace(redacted)

        ordered_counts = {
            category: counts[category]
            for category in self.registry.all_patterns()
            if counts[category]
        }
        highest = max(severities, key=lambda s: s.rank) if severities else None

        result = ScrubResult(
            redacted_text=redacted,
            fingerprint=Fingerprint.of_redacted(redacted),
            scope=scope,
            original_length=len(text),
            items_found=sum(ordered_counts.values()),
            category_counts=MappingProxyType(ordered_counts),
            has_critical=Severity.CRITICAL in severities,
            highest_severity=highest,
        )
        logger.debug(
            f"Scrubbed {scope.value} text: {result.items_found} items, "
            f"categories={[c.value for c in ordered_counts]}"
        )
        return result

    def mask_for_display(
        self,
        text: Union[str, bytes],
        scope: Union[ContentScope, str] = ContentScope.GENERAL,
    ) -> str:
        """
        Mask PII while keeping the text length.

        Each matched span keeps up to two characters at each end and the rest
        is filled with ``mask_char``. Intended for audit trails shown to
        humans, never for cache keys or downstream calls.
        """
        scope = coerce_scope(scope)
        text = ensure_text(text)

        pieces = []
        cursor = 0
        for match in self._resolve_overlaps(self.detector.detect(text, scope)):
            pieces.append(text[cursor : match.start])
            pieces.append(self._partial_mask(text[match.start : match.end]))
            cursor = match.end
        pieces.append(text[cursor:])
        return "".join(pieces)

    def validate_safe_for_processing(
        self,
        text: Union[str, bytes],
        scope: Union[ContentScope, str] = ContentScope.GENERAL,
    ) -> tuple[bool, list[str]]:
        """Return whether text is free of critical PII, plus issue summaries."""
        result = self.scrub(text, scope)
        if not result.has_critical:
            return True, []
        categories = ", ".join(c.value for c in result.category_counts)
        return False, [f"Found {result.items_found} PII items in categories: {categories}"]

    def _scrub_pass(
        self, text: str, scope: ContentScope
    ) -> tuple[str, Counter, set[Severity]]:
        """Detect, replace and run the scope pass once."""
        matches = self._resolve_overlaps(self.detector.detect(text, scope))
        redacted, replaced_spans = self._apply_replacements(text, matches)

        counts = Counter(m.category for m in matches)
        severities = {m.severity for m in matches}

        if scope is ContentScope.RESUME:
            redacted = self._redact_sections(redacted, replaced_spans)
        elif scope is ContentScope.JOB_DESCRIPTION:
            redacted, contacts = self._redact_contact_lines(redacted)
            if contacts:
                counts[Category.NAME] += contacts
                severities.add(self.registry.all_patterns()[Category.NAME].severity)

        return redacted, counts, severities

    @staticmethod
    def _resolve_overlaps(matches: Iterable[DetectionMatch]) -> list[DetectionMatch]:
        """Keep non-overlapping matches, earlier rules first; return by position."""
        starts: list[int] = []
        kept: list[DetectionMatch] = []

        for match in sorted(matches, key=lambda m: (m.rule_order, m.start)):
            i = bisect.bisect_right(starts, match.start)
            if i > 0 and kept[i - 1].end > match.start:
                continue
            if i < len(kept) and kept[i].start < match.end:
                continue
            starts.insert(i, match.start)
            kept.insert(i, match)

        return kept

    def _replacement_for(self, match: DetectionMatch) -> str:
        if not self.masking:
            return ""
        return self.registry.label_for(match.category)

    def _apply_replacements(
        self, text: str, matches: list[DetectionMatch]
    ) -> tuple[str, list[tuple[int, int]]]:
        """Rewrite matches left to right; return text and replaced output spans."""
        pieces = []
        spans = []
        cursor = 0
        out_len = 0

        for match in matches:
            kept = text[cursor : match.start]
            replacement = self._replacement_for(match)
            pieces.append(kept)
            pieces.append(replacement)
            out_len += len(kept)
            spans.append((out_len, out_len + len(replacement)))
            out_len += len(replacement)
            cursor = match.end

        pieces.append(text[cursor:])
        return "".join(pieces), spans

    @staticmethod
    def _redact_sections(text: str, replaced_spans: list[tuple[int, int]]) -> str:
        """Redact References / Personal sections that contain a redaction."""
        pieces = []
        cursor = 0

        for header in _SECTION_HEADER.finditer(text):
            start = header.start()
            if start < cursor:
                continue

            section_break = _SECTION_BREAK.search(text, header.end())
            end = section_break.start() if section_break else len(text)

            if not any(start <= s and e <= end for s, e in replaced_spans):
                continue

            label = REFERENCES_SECTION_LABEL if header.group("references") else PERSONAL_SECTION_LABEL
            pieces.append(text[cursor:start])
            pieces.append(label)
            cursor = end

        pieces.append(text[cursor:])
        return "".join(pieces)

    @staticmethod
    def _redact_contact_lines(text: str) -> tuple[str, int]:
        """Redact named contacts in job-description fields."""
        return _CONTACT_FIELD.subn(lambda m: m.group("field") + HIRING_MANAGER_LABEL, text)

    def _partial_mask(self, original: str) -> str:
        visible = min(2, len(original) // 10)
        masked_length = len(original) - visible * 2
        if masked_length <= 0 or visible == 0:
            return self.mask_char * len(original)
        return (
            original[:visible]
            + self.mask_char * masked_length
            + original[len(original) - visible :]
        )


def collapse_whitespace(text: str) -> str:
    """Normalize whitespace left behind by redaction."""
    text = text.replace("\r\n", "\n")
    text = _TRAILING_SPACE.sub("", text)
    text = _SPACE_RUN.sub(" ", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()
