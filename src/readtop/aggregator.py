"""Per-executable read accounting for readtop."""

import threading
from types import MappingProxyType

from readtop.classifier import classify
from readtop.models import IORecord, ReadEvent, Snapshot


class IntervalAggregator:
    """
    Accumulates bytes read per executable until the next drain.

    Event sources call record() (or feed()) from their own threads while the
    reporter calls drain() from its timer thread. A single lock covers both,
    so an increment is never split by a drain.
    """

    def __init__(self) -> None:
        """Initialize an empty table."""
        self._lock = threading.Lock()
        self._table: dict[str, int] = {}

    def record(self, event: ReadEvent) -> None:
        """Add the event's bytes to its executable's running total."""
        with self._lock:
            self._table[event.executable_name] = (
                self._table.get(event.executable_name, 0) + event.byte_count
            )

    def feed(self, record: IORecord) -> bool:
        """Classify a raw record and record it if it is a read."""
        event = classify(record)
        if event is None:
            return False
        self.record(event)
        return True

    def drain(self) -> Snapshot:
        """Take the current totals and start a new, empty table."""
        with self._lock:
            table, self._table = self._table, {}
        return Snapshot(totals=MappingProxyType(table))

    def peek(self) -> dict[str, int]:
        """Copy of the current totals, leaving the table untouched."""
        with self._lock:
            return dict(self._table)
