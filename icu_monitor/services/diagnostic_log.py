"""
Bounded, most-recent-first log of diagnostic events.

The log keeps an immutable tuple and swaps it on every append, so a reader
holding a snapshot never sees it change underneath.
"""

import itertools
import threading
from datetime import UTC, datetime

import structlog

from icu_monitor.domain.models import DeviceKind, DiagnosticEvent, Severity

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 100


class DiagnosticLog:
    """Capped event log; the oldest entry is evicted once full."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("diagnostic log capacity must be positive")
        self.capacity = capacity
        self._events: tuple[DiagnosticEvent, ...] = ()
        self._ids = itertools.count(1)
        # Delivery failures are recorded from the dispatch worker thread
        self._lock = threading.Lock()
        self.logger = logger.bind(component="diagnostic_log")

    def append(self, event: DiagnosticEvent) -> None:
        with self._lock:
            self._push(event)
        self._log(event)

    def _push(self, event: DiagnosticEvent) -> None:
        self._events = (event, *self._events)[: self.capacity]

    def _log(self, event: DiagnosticEvent) -> None:
        self.logger.debug(
            "diagnostic_recorded",
            device=event.source_device.value,
            severity=event.severity.value,
            text=event.text,
        )

    def record(
        self,
        text: str,
        severity: Severity,
        device: DeviceKind,
        timestamp: datetime | None = None,
    ) -> DiagnosticEvent:
        """Create an event with the next sequential id and append it."""
        with self._lock:
            event = DiagnosticEvent(
                id=f"diag-{next(self._ids)}",
                timestamp=timestamp or datetime.now(UTC),
                text=text,
                severity=severity,
                source_device=device,
            )
            self._push(event)
        self._log(event)
        return event

    def list_recent(self) -> tuple[DiagnosticEvent, ...]:
        return self._events

    def __len__(self) -> int:
        return len(self._events)
