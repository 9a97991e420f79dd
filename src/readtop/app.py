"""readtop - Live Textual view of per-executable read bytes."""

from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from readtop.aggregator import IntervalAggregator
from readtop.config import DEFAULT_INTERVAL, UI_REFRESH_SEC
from readtop.models import Snapshot
from readtop.reporter import IntervalReporter, escape_name
from readtop.sources import EventSource


class SortKey(Enum):
    """Sort keys for the read table."""

    BYTES = "bytes"
    NAME = "name"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


class IntervalHeader(Static):
    """Header widget summarising the last reported interval."""

    DEFAULT_CSS = """
    IntervalHeader {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, interval: float = DEFAULT_INTERVAL, *args, **kwargs) -> None:
        """Initialize IntervalHeader."""
        super().__init__(*args, **kwargs)
        self._interval = interval
        self._intervals_seen = 0
        self._executables = 0
        self._total_bytes = 0

    def on_mount(self) -> None:
        """Show the waiting message until the first interval ends."""
        self.update(self._summary_text())

    def update_stats(self, snapshot: Snapshot, intervals: int = 1) -> None:
        """
        Update the header from an interval snapshot.

        Args:
            snapshot: The newest interval.
            intervals: How many intervals ended since the last update.
        """
        self._intervals_seen += intervals
        self._executables = len(snapshot)
        self._total_bytes = snapshot.total_bytes
        self.update(self._summary_text())

    def _summary_text(self) -> str:
        """Build the one-line interval summary."""
        if self._intervals_seen == 0:
            return f"Waiting for the first {self._interval:g}s interval..."
        rate = self._total_bytes / self._interval
        return (
            f"Interval #{self._intervals_seen} ({self._interval:g}s)  "
            f"Executables: {self._executables}  "
            f"Read: {format_bytes(self._total_bytes).strip()}  "
            f"Rate: {format_bytes(int(rate)).strip()}/s"
        )


class ReadTable(Container):
    """Container for the per-executable read table."""

    DEFAULT_CSS = """
    ReadTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ReadTable."""
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.BYTES
        self._last_snapshot: Snapshot | None = None

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key, re-sort, and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        if self._last_snapshot is not None:
            self.update_snapshot(self._last_snapshot)
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the read table."""
        yield DataTable(id="read-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#read-table", DataTable)
        table.cursor_type = "row"

        table.add_column("COMMAND", key="command", width=20)
        table.add_column("BYTES", key="bytes", width=16)
        table.add_column("HUMAN", key="human", width=8)
        table.add_column("SHARE%", key="share", width=8)

    def update_snapshot(self, snapshot: Snapshot) -> None:
        """Replace the table contents with one interval's totals."""
        table = self.query_one("#read-table", DataTable)
        self._last_snapshot = snapshot

        total = snapshot.total_bytes
        table.clear()
        for name, count in self._sorted_entries(snapshot):
            share = 100.0 * count / total if total else 0.0
            table.add_row(
                escape_name(name),
                str(count),
                format_bytes(count),
                f"{share:5.1f}",
                key=name,
            )

    def _sorted_entries(self, snapshot: Snapshot) -> list[tuple[str, int]]:
        """Order snapshot entries by the current sort key."""
        if self._sort_key is SortKey.NAME:
            return sorted(snapshot.totals.items())
        return snapshot.by_bytes()


class ReadtopApp(App):
    """Main readtop application."""

    TITLE = "readtop"
    SUB_TITLE = "Block read bytes per executable"

    CSS = """
    Screen {
        layout: vertical;
    }

    #interval-header {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(
        self,
        aggregator: IntervalAggregator | None = None,
        source: EventSource | None = None,
        interval: float = DEFAULT_INTERVAL,
    ) -> None:
        """
        Initialize the ReadtopApp.

        Args:
            aggregator: Aggregator the source feeds; a new one if omitted.
            source: Unstarted event source, started when the app mounts.
            interval: Seconds between reports.
        """
        super().__init__()
        self._update_queue: Queue[Snapshot] = Queue()
        self._aggregator = aggregator or IntervalAggregator()
        self._source = source
        self._reporter = IntervalReporter(
            self._aggregator,
            interval=interval,
            stream=None,
            update_queue=self._update_queue,
        )

    @property
    def aggregator(self) -> IntervalAggregator:
        """Get the aggregator the source feeds."""
        return self._aggregator

    @property
    def reporter(self) -> IntervalReporter:
        """Get the reporter draining the aggregator."""
        return self._reporter

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield IntervalHeader(self._reporter.interval, id="interval-header")
        yield ReadTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the source and reporter when the app is mounted."""
        if self._source is not None:
            self._source.start()
        self._reporter.start()
        self.set_interval(UI_REFRESH_SEC, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Show the newest snapshot waiting in the queue, if any."""
        snapshot = None
        intervals = 0
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
            intervals += 1

        if snapshot is not None:
            self._update_ui(snapshot, intervals)

    def _update_ui(self, snapshot: Snapshot, intervals: int = 1) -> None:
        """Update the UI with a new interval snapshot."""
        self.query_one("#interval-header", IntervalHeader).update_stats(snapshot, intervals)
        self.query_one(ReadTable).update_snapshot(snapshot)

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        new_sort_key = self.query_one(ReadTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._stop_workers()
        self.exit()

    def on_unmount(self) -> None:
        """Stop the background threads when the app goes away."""
        self._stop_workers()

    def _stop_workers(self) -> None:
        """Stop the reporter and the event source threads."""
        self._reporter.stop()
        if self._source is not None:
            self._source.stop()
