"""Interval reporting for readtop."""

import logging
import sys
import threading
from queue import Queue
from typing import TextIO

from readtop.aggregator import IntervalAggregator
from readtop.config import DEFAULT_INTERVAL, MIN_INTERVAL
from readtop.models import Snapshot

logger = logging.getLogger(__name__)


def escape_name(name: str) -> str:
    """Backslash-escape non-printable characters in an executable name."""
    if name.isprintable() and "\\" not in name:
        return name
    out = []
    for char in name:
        if char == "\\":
            out.append("\\\\")
        elif char.isprintable():
            out.append(char)
        else:
            out.append(char.encode("unicode_escape").decode("ascii"))
    return "".join(out)


def format_report(snapshot: Snapshot) -> str:
    """Render one interval as name:total lines followed by a blank line."""
    lines = [f"{escape_name(name)}:{total}\n" for name, total in snapshot.totals.items()]
    lines.append("\n")
    return "".join(lines)


class IntervalReporter:
    """
    Drains an aggregator on a fixed interval and reports what it held.

    Runs in a separate daemon thread. Each tick writes the report to a text
    stream and, when a queue is given, pushes the snapshot to it as well.
    Totals of the interval in progress when stop() is called are dropped.
    """

    def __init__(
        self,
        aggregator: IntervalAggregator,
        interval: float = DEFAULT_INTERVAL,
        stream: TextIO | None = sys.stdout,
        update_queue: Queue[Snapshot] | None = None,
    ) -> None:
        """
        Initialize the IntervalReporter.

        Args:
            aggregator: The aggregator to drain on every tick.
            interval: Seconds between ticks. Default 5.0s.
            stream: Where the text report goes; None for no text.
            update_queue: Optional queue receiving every snapshot.
        """
        self._aggregator = aggregator
        self._interval = max(MIN_INTERVAL, interval)
        self._stream = stream
        self._queue = update_queue
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._ticks = 0

    @property
    def interval(self) -> float:
        """Get the reporting interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the reporting interval."""
        self._interval = max(MIN_INTERVAL, value)

    @property
    def ticks(self) -> int:
        """Number of intervals reported so far."""
        return self._ticks

    @property
    def is_running(self) -> bool:
        """Check if the reporter thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the reporter thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._tick_loop,
            daemon=True,
            name="IntervalReporter",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the reporter thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def tick(self) -> Snapshot:
        """Drain the aggregator and report the interval that just ended."""
        snapshot = self._aggregator.drain()
        self._ticks += 1

        if self._stream is not None:
            self._stream.write(format_report(snapshot))
            self._stream.flush()
        if self._queue is not None:
            self._queue.put(snapshot)

        logger.debug(
            "interval %d: %d executables, %d bytes",
            self._ticks,
            len(snapshot),
            snapshot.total_bytes,
        )
        return snapshot

    def _tick_loop(self) -> None:
        """Main loop running in the background thread."""
        # Wait first: the first report covers a full interval
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.tick()
            except BrokenPipeError:
                logger.error("report stream closed; stopping reporter")
                self._stop_event.set()
            except Exception:
                logger.exception("failed to report interval")
