"""Verification Test: sustained event load on the aggregator.

Block tracing on a busy host delivers tens of thousands of read events per
interval. These tests drive the aggregator at that rate from several threads
while the reporter drains it, and check that totals stay exact and that
memory does not grow across intervals.
"""

import gc
import io
import threading
import time

import psutil

from readtop.aggregator import IntervalAggregator
from readtop.models import IOFlag, IORecord, ReadEvent
from readtop.reporter import IntervalReporter


def get_current_memory_mb() -> float:
    """Get current process memory usage in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


class TestLoadTest:
    """Load test verification suite tests."""

    def test_many_executables_one_interval(self):
        """Test a single interval with thousands of distinct executables."""
        aggregator = IntervalAggregator()
        num_names = 5000

        for i in range(num_names):
            aggregator.record(ReadEvent(f"worker-{i}", 4096))
            aggregator.record(ReadEvent(f"worker-{i}", 512))

        snapshot = aggregator.drain()

        assert len(snapshot) == num_names
        assert snapshot.total_bytes == num_names * 4608
        assert all(total == 4608 for total in snapshot.totals.values())

    def test_throughput_under_reporter(self):
        """
        Test feed() keeps up while the reporter drains every 0.1s.

        Every byte fed must show up in exactly one report.
        """
        aggregator = IntervalAggregator()
        stream = io.StringIO()
        reporter = IntervalReporter(aggregator, interval=0.1, stream=stream)
        num_threads = 4
        events_per_thread = 50_000

        def producer(index: int) -> None:
            read = IORecord(IOFlag.READ, 4096, f"dd-{index}")
            write = IORecord(IOFlag.WRITE, 4096, f"dd-{index}")
            for i in range(events_per_thread):
                aggregator.feed(write if i % 10 == 0 else read)

        threads = [threading.Thread(target=producer, args=(i,)) for i in range(num_threads)]

        reporter.start()
        start_time = time.time()
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        finally:
            reporter.stop()
        elapsed = time.time() - start_time

        final = aggregator.drain()

        reported = 0
        for line in stream.getvalue().splitlines():
            if line:
                reported += int(line.rsplit(":", 1)[1])
        reported += final.total_bytes

        expected_reads = num_threads * (events_per_thread - events_per_thread // 10)
        assert reported == expected_reads * 4096
        assert elapsed < 30.0, f"Feeding took {elapsed:.1f}s"

    def test_memory_stable_across_intervals(self):
        """Test draining releases the previous interval's table."""
        gc.collect()
        aggregator = IntervalAggregator()

        # Warm up allocator pools before measuring
        for i in range(2000):
            aggregator.record(ReadEvent(f"proc-{i}", 1))
        aggregator.drain()
        gc.collect()
        initial_memory = get_current_memory_mb()

        for cycle in range(50):
            for i in range(2000):
                aggregator.record(ReadEvent(f"proc-{cycle}-{i}", 1))
            aggregator.drain()

        gc.collect()
        memory_delta = get_current_memory_mb() - initial_memory

        assert memory_delta < 10.0, f"Memory grew by {memory_delta:.2f}MB over 50 intervals"
