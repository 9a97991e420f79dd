"""Tests for the IntervalAggregator class."""

import threading

from readtop.aggregator import IntervalAggregator
from readtop.models import IOFlag, IORecord, ReadEvent, Snapshot


class TestRecord:
    """Tests for accumulating read events."""

    def test_record_sums_by_executable(self):
        """Test totals equal the sum of byte counts per executable."""
        aggregator = IntervalAggregator()
        aggregator.record(ReadEvent("catd", 4096))
        aggregator.record(ReadEvent("catd", 8192))
        aggregator.record(ReadEvent("httpd", 1024))

        assert aggregator.peek() == {"catd": 12288, "httpd": 1024}

    def test_entries_created_lazily(self):
        """Test executables without reads have no entry."""
        aggregator = IntervalAggregator()
        assert aggregator.peek() == {}

        aggregator.record(ReadEvent("catd", 0))
        assert aggregator.peek() == {"catd": 0}

    def test_peek_does_not_reset(self):
        """Test peek returns a copy and leaves the table alone."""
        aggregator = IntervalAggregator()
        aggregator.record(ReadEvent("a", 1))

        copy = aggregator.peek()
        copy["a"] = 999

        assert aggregator.peek() == {"a": 1}


class TestFeed:
    """Tests for feeding raw records through the classifier."""

    def test_write_excluded(self):
        """Test the mixed read/write scenario excludes the write."""
        aggregator = IntervalAggregator()
        records = [
            IORecord(IOFlag.READ, 4096, "catd"),
            IORecord(IOFlag.READ, 8192, "catd"),
            IORecord(IOFlag.READ, 1024, "httpd"),
            IORecord(IOFlag.WRITE, 512, "catd"),
        ]

        accepted = [aggregator.feed(record) for record in records]

        assert accepted == [True, True, True, False]
        assert aggregator.peek() == {"catd": 12288, "httpd": 1024}

    def test_non_reads_never_create_entries(self):
        """Test rejected records leave no trace in the table."""
        aggregator = IntervalAggregator()
        aggregator.feed(IORecord(IOFlag.WRITE | IOFlag.SYNC, 512, "jbd2/sda1-8"))
        aggregator.feed(IORecord(IOFlag.FLUSH, 0, "kworker/1:2"))

        assert aggregator.peek() == {}


class TestDrain:
    """Tests for draining the table."""

    def test_drain_returns_contents_and_empties(self):
        """Test drain returns the prior contents and leaves the table empty."""
        aggregator = IntervalAggregator()
        aggregator.record(ReadEvent("catd", 4096))

        snapshot = aggregator.drain()

        assert isinstance(snapshot, Snapshot)
        assert snapshot.totals == {"catd": 4096}
        assert aggregator.peek() == {}

    def test_drain_empty_table(self):
        """Test draining an empty table gives an empty snapshot."""
        aggregator = IntervalAggregator()

        snapshot = aggregator.drain()

        assert len(snapshot) == 0
        assert aggregator.peek() == {}

    def test_totals_do_not_carry_over(self):
        """Test each drain only sees reads since the previous one."""
        aggregator = IntervalAggregator()

        aggregator.record(ReadEvent("a", 100))
        assert aggregator.drain().totals == {"a": 100}

        aggregator.record(ReadEvent("a", 50))
        assert aggregator.drain().totals == {"a": 50}

    def test_second_drain_is_empty(self):
        """Test two drains in a row give an empty second snapshot."""
        aggregator = IntervalAggregator()
        aggregator.record(ReadEvent("a", 100))

        first = aggregator.drain()
        second = aggregator.drain()

        assert first.totals == {"a": 100}
        assert second.totals == {}

    def test_snapshot_unaffected_by_later_records(self):
        """Test a snapshot does not change when recording resumes."""
        aggregator = IntervalAggregator()
        aggregator.record(ReadEvent("a", 100))
        snapshot = aggregator.drain()

        aggregator.record(ReadEvent("a", 1))
        aggregator.record(ReadEvent("b", 1))

        assert snapshot.totals == {"a": 100}


class TestConcurrency:
    """Tests for record and drain racing on separate threads."""

    def test_no_lost_updates(self):
        """Test concurrent records interleaved with drains lose no bytes."""
        aggregator = IntervalAggregator()
        num_threads = 4
        events_per_thread = 5000
        start = threading.Barrier(num_threads + 1)

        def producer(name: str) -> None:
            start.wait()
            for _ in range(events_per_thread):
                aggregator.record(ReadEvent(name, 3))

        threads = [
            threading.Thread(target=producer, args=(f"proc{i % 2}",))
            for i in range(num_threads)
        ]
        for thread in threads:
            thread.start()

        snapshots = []
        start.wait()
        while any(thread.is_alive() for thread in threads):
            snapshots.append(aggregator.drain())
        for thread in threads:
            thread.join()
        snapshots.append(aggregator.drain())

        total = sum(snapshot.total_bytes for snapshot in snapshots)
        assert total == num_threads * events_per_thread * 3

        per_name: dict[str, int] = {}
        for snapshot in snapshots:
            for name, count in snapshot.totals.items():
                per_name[name] = per_name.get(name, 0) + count
        assert per_name == {
            "proc0": 2 * events_per_thread * 3,
            "proc1": 2 * events_per_thread * 3,
        }
