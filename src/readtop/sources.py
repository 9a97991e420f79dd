"""Event sources feeding block I/O records to readtop."""

import abc
import ctypes as ct
import logging
import threading
from collections.abc import Callable
from typing import Any

import psutil

from readtop.config import DEFAULT_POLL_RATE, PERF_PAGE_CNT, POLL_TIMEOUT_MS
from readtop.errors import SourceUnavailableError
from readtop.models import IOFlag, IORecord

logger = logging.getLogger(__name__)

RecordSink = Callable[[IORecord], object]

ERROR_BACKOFF_SEC = 1.0

BPF_TEXT = r"""
#include <linux/sched.h>

struct data_t {
    u32 pid;
    u32 bytes;
    char rwbs[8];
    char comm[TASK_COMM_LEN];
};

BPF_PERF_OUTPUT(events);

TRACEPOINT_PROBE(block, block_rq_issue)
{
    struct data_t data = {};

    data.pid = bpf_get_current_pid_tgid() >> 32;
    data.bytes = args->bytes;
    bpf_probe_read_kernel(&data.rwbs, sizeof(data.rwbs), args->rwbs);
    bpf_probe_read_kernel(&data.comm, sizeof(data.comm), args->comm);

    events.perf_submit(args, &data, sizeof(data));
    return 0;
}
"""


class BlockEvent(ct.Structure):
    """Layout of one perf sample, matching struct data_t."""

    _fields_ = [
        ("pid", ct.c_uint),
        ("bytes", ct.c_uint),
        ("rwbs", ct.c_char * 8),
        ("comm", ct.c_char * 16),
    ]


class EventSource(abc.ABC):
    """
    Base class for sources producing IORecords on a background thread.

    Subclasses implement _poll(), which delivers whatever records are
    available, and may override _open()/_close() to acquire and release
    host resources around the thread's lifetime.
    """

    thread_name = "EventSource"

    def __init__(self, sink: RecordSink, pause: float = 0.0) -> None:
        """
        Initialize the EventSource.

        Args:
            sink: Called with every record, on the source thread.
            pause: Seconds to wait between polls.
        """
        self._sink = sink
        self._pause = pause
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._delivered = 0

    @property
    def delivered(self) -> int:
        """Number of records handed to the sink."""
        return self._delivered

    @property
    def is_running(self) -> bool:
        """Check if the source thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Open the source and start its thread."""
        if self.is_running:
            return

        self._open()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name=self.thread_name,
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the source thread and release the source.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._close()

    def _open(self) -> None:
        """Acquire host resources before the thread starts."""

    def _close(self) -> None:
        """Release host resources after the thread stops."""

    @abc.abstractmethod
    def _poll(self) -> None:
        """Deliver the records available right now."""

    def _deliver(self, record: IORecord) -> None:
        """Count a record and hand it to the sink."""
        self._delivered += 1
        self._sink(record)

    def _poll_loop(self) -> None:
        """Main loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._poll()
            except Exception:
                logger.exception("%s poll failed", self.thread_name)
                self._stop_event.wait(timeout=ERROR_BACKOFF_SEC)
                continue

            if self._pause:
                self._stop_event.wait(timeout=self._pause)


def _load_bpf() -> Callable[..., Any]:
    """Import bcc.BPF, reporting a missing install as unavailable."""
    try:
        from bcc import BPF
    except ImportError as exc:
        raise SourceUnavailableError("bcc python bindings are not installed") from exc
    return BPF


class BPFEventSource(EventSource):
    """
    Block request records from the block:block_rq_issue tracepoint.

    The eBPF program copies the issuing task's comm, the request size and
    its rwbs description into a perf buffer; the thread polls the buffer and
    turns each sample into an IORecord. Requires root and the bcc bindings.
    """

    thread_name = "BPFEventSource"

    def __init__(
        self,
        sink: RecordSink,
        bpf_factory: Callable[..., Any] | None = None,
        poll_timeout_ms: int = POLL_TIMEOUT_MS,
    ) -> None:
        """
        Initialize the BPFEventSource.

        Args:
            sink: Called with every decoded record.
            bpf_factory: Builds the BPF object from program text; bcc.BPF if omitted.
            poll_timeout_ms: Longest wait for perf samples per poll.
        """
        super().__init__(sink)
        self._bpf_factory = bpf_factory
        self._poll_timeout_ms = poll_timeout_ms
        self._bpf: Any = None
        self._lost = 0

    @property
    def lost(self) -> int:
        """Samples the kernel dropped because the perf buffer was full."""
        return self._lost

    def _open(self) -> None:
        """Compile the program and open its perf buffer."""
        factory = self._bpf_factory or _load_bpf()
        try:
            self._bpf = factory(text=BPF_TEXT)
            self._bpf["events"].open_perf_buffer(
                self._handle_event,
                lost_cb=self._handle_lost,
                page_cnt=PERF_PAGE_CNT,
            )
        except Exception as exc:
            self._close()
            raise SourceUnavailableError(f"cannot load block tracing program: {exc}") from exc

        logger.info("tracing block:block_rq_issue")

    def _close(self) -> None:
        """Detach the program."""
        if self._bpf is not None:
            self._bpf.cleanup()
            self._bpf = None

    def _poll(self) -> None:
        """Wait up to the poll timeout for samples and dispatch them."""
        self._bpf.perf_buffer_poll(timeout=self._poll_timeout_ms)

    def _handle_event(self, cpu: int, data: Any, size: int) -> None:
        """Decode one perf sample into an IORecord."""
        ev = ct.cast(data, ct.POINTER(BlockEvent)).contents
        self._deliver(
            IORecord(
                flags=IOFlag.from_rwbs(ev.rwbs.decode("ascii", "replace")),
                byte_count=ev.bytes,
                executable_name=ev.comm.decode("utf-8", "replace"),
                pid=ev.pid,
            )
        )

    def _handle_lost(self, lost: int) -> None:
        """Count samples the kernel dropped."""
        self._lost += lost
        logger.warning("lost %d block events (%d total)", lost, self._lost)


class ProcIOEventSource(EventSource):
    """
    Read records derived from per-process I/O counters via psutil.

    Every poll compares each process's storage-layer read_bytes with the
    previous poll and delivers the growth as one read record. A process seen
    for the first time only sets its baseline. Handles AccessDenied and
    ZombieProcess errors gracefully.
    """

    thread_name = "ProcIOEventSource"

    def __init__(self, sink: RecordSink, poll_rate: float = DEFAULT_POLL_RATE) -> None:
        """
        Initialize the ProcIOEventSource.

        Args:
            sink: Called with every read record.
            poll_rate: How often to compare counters (in seconds). Minimum 0.1s.
        """
        super().__init__(sink, pause=max(0.1, poll_rate))
        self._last_read: dict[int, int] = {}

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._pause

    def _open(self) -> None:
        """Check the platform has per-process counters and prime baselines."""
        if not hasattr(psutil.Process, "io_counters"):
            raise SourceUnavailableError("psutil has no per-process I/O counters on this platform")

        # Prime baselines so the first interval only sees new reads
        self._poll()
        logger.info("polling per-process I/O counters every %.1fs", self._pause)

    def _close(self) -> None:
        """Forget all baselines."""
        self._last_read.clear()

    def _poll(self) -> None:
        """Deliver read growth of every process since the previous poll."""
        seen: set[int] = set()

        for proc in psutil.process_iter(attrs=["pid", "name", "io_counters"]):
            try:
                info = proc.info
                counters = info.get("io_counters")
                if counters is None:
                    continue

                pid = info["pid"]
                seen.add(pid)
                read_bytes = counters.read_bytes
                previous = self._last_read.get(pid)
                self._last_read[pid] = read_bytes

                # New pid, or a reused one whose counters restarted
                if previous is None or read_bytes <= previous:
                    continue

                self._deliver(
                    IORecord(
                        flags=IOFlag.READ,
                        byte_count=read_bytes - previous,
                        executable_name=info.get("name") or "",
                        pid=pid,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        for pid in self._last_read.keys() - seen:
            del self._last_read[pid]
