"""Audit trail of scrub and cache operations.

Events describe what kind of PII was found and whether the result was
cached. They never contain matched text.
"""

import logging
import threading
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from scrubcache.models import ScrubResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_AUDIT_ENTRIES = 100


@dataclass(frozen=True)
class AuditEvent:
    """Record of one scrub operation and its cache outcome."""

    source_type: str
    original_length: int
    redacted_length: int
    categories_found: tuple[str, ...]
    category_counts: dict[str, int]
    has_critical: bool
    cached: bool
    duration_ms: float
    timestamp: float = field(default_factory=time.time)
    event_id: str = field(default_factory=lambda: f"audit_{uuid.uuid4().hex[:12]}")

    @classmethod
    def from_result(
        cls,
        result: ScrubResult,
        cached: bool,
        duration_ms: float,
        source_type: Optional[str] = None,
    ) -> "AuditEvent":
        """Build an event from a scrub result."""
        counts = {c.value: n for c, n in result.category_counts.items()}
        return cls(
            source_type=source_type or result.scope.value,
            original_length=result.original_length,
            redacted_length=result.redacted_length,
            categories_found=tuple(counts),
            category_counts=counts,
            has_critical=result.has_critical,
            cached=cached,
            duration_ms=round(duration_ms, 3),
        )

    @property
    def items_found(self) -> int:
        return sum(self.category_counts.values())

    def to_dict(self) -> dict[str, Any]:
        """Return the event as a plain dictionary."""
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "source_type": self.source_type,
            "original_length": self.original_length,
            "redacted_length": self.redacted_length,
            "categories_found": list(self.categories_found),
            "category_counts": dict(self.category_counts),
            "has_critical": self.has_critical,
            "cached": self.cached,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class AuditStats:
    """Aggregates over the retained audit events."""

    total_operations: int = 0
    critical_pii_blocked: int = 0
    total_pii_items_found: int = 0
    cache_blocked_due_to_pii: int = 0
    average_processing_time_ms: float = 0.0
    top_categories: tuple[tuple[str, int], ...] = ()


AuditListener = Callable[[AuditEvent], None]


class AuditLog:
    """Bounded, newest-first log of audit events."""

    def __init__(self, max_entries: int = DEFAULT_MAX_AUDIT_ENTRIES) -> None:
        self._events: "deque[AuditEvent]" = deque(maxlen=max_entries)
        self._listeners: list[AuditListener] = []
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> None:
        """Store an event, log it and notify listeners."""
        with self._lock:
            self._events.appendleft(event)
            listeners = list(self._listeners)

        logger.info("PII scrub audit", extra={"audit": event.to_dict()})
        for listener in listeners:
            listener(event)

    def subscribe(self, listener: AuditListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def entries(self) -> list[AuditEvent]:
        """Return retained events, newest first."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def stats(self) -> AuditStats:
        """Summarize retained events."""
        events = self.entries()
        if not events:
            return AuditStats()

        category_totals: Counter = Counter()
        for event in events:
            category_totals.update(event.category_counts)

        return AuditStats(
            total_operations=len(events),
            critical_pii_blocked=sum(1 for e in events if e.has_critical),
            total_pii_items_found=sum(e.items_found for e in events),
            cache_blocked_due_to_pii=sum(1 for e in events if e.has_critical and not e.cached),
            average_processing_time_ms=round(
                sum(e.duration_ms for e in events) / len(events), 1
            ),
            top_categories=tuple(category_totals.most_common(10)),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
