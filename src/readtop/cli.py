"""Command line entry point for readtop."""

import argparse
import logging
import signal
import sys
import threading
from collections.abc import Sequence

from readtop.aggregator import IntervalAggregator
from readtop.config import DEFAULT_INTERVAL, DEFAULT_POLL_RATE, SOURCES, ProbeConfig
from readtop.errors import SourceUnavailableError
from readtop.log import setup_logger
from readtop.reporter import IntervalReporter
from readtop.sources import BPFEventSource, EventSource, ProcIOEventSource, RecordSink

logger = logging.getLogger(__name__)

examples = """examples:
    readtop                 # bytes read per executable, every 5 seconds
    readtop -i 1            # report every second
    readtop -s procio       # use per-process I/O counters instead of eBPF
    readtop --tui           # live table instead of text reports
"""


def positive_float(val: str) -> float:
    """argparse type for a strictly positive number."""
    try:
        fval = float(val)
    except ValueError:
        raise argparse.ArgumentTypeError("must be a number")

    if fval <= 0:
        raise argparse.ArgumentTypeError("must be positive")
    return fval


def build_parser() -> argparse.ArgumentParser:
    """Build the readtop argument parser."""
    parser = argparse.ArgumentParser(
        prog="readtop",
        description="Summarize block device read bytes by executable",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=examples,
    )
    parser.add_argument("-i", "--interval", type=positive_float, default=DEFAULT_INTERVAL,
                        metavar="SECONDS", help="output interval, in seconds (default 5)")
    parser.add_argument("-s", "--source", choices=SOURCES, default="auto",
                        help="where read events come from (default auto)")
    parser.add_argument("--poll-rate", type=positive_float, default=DEFAULT_POLL_RATE,
                        metavar="SECONDS", help="procio polling period (default 1)")
    parser.add_argument("--tui", action="store_true",
                        help="show a live table instead of text reports")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true",
                           help="log debug messages to stderr")
    verbosity.add_argument("-q", "--quiet", action="store_true",
                           help="log warnings and errors only")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> ProbeConfig:
    """Parse command line arguments into a ProbeConfig."""
    args = build_parser().parse_args(argv)

    log_level = logging.INFO
    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.WARNING

    return ProbeConfig(
        interval=args.interval,
        source=args.source,
        tui=args.tui,
        log_level=log_level,
        poll_rate=args.poll_rate,
    )


def make_source(kind: str, sink: RecordSink, poll_rate: float = DEFAULT_POLL_RATE) -> EventSource:
    """Create an unstarted source of the given kind."""
    if kind == "bpf":
        return BPFEventSource(sink)
    if kind == "procio":
        return ProcIOEventSource(sink, poll_rate=poll_rate)
    raise ValueError(f"unknown source: {kind}")


def start_source(config: ProbeConfig, sink: RecordSink) -> EventSource:
    """
    Start the configured event source and return it.

    In auto mode an unavailable eBPF source falls back to psutil's
    per-process counters. An explicitly requested source that cannot start
    raises SourceUnavailableError.
    """
    kind = "bpf" if config.source == "auto" else config.source
    source = make_source(kind, sink, config.poll_rate)
    try:
        source.start()
    except SourceUnavailableError as exc:
        if config.source != "auto":
            raise
        logger.warning("eBPF unavailable (%s); falling back to process I/O counters", exc)
        source = make_source("procio", sink, config.poll_rate)
        source.start()
    return source


def run_report(config: ProbeConfig, aggregator: IntervalAggregator, source: EventSource) -> None:
    """Print a report every interval until interrupted or terminated."""
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())

    reporter = IntervalReporter(aggregator, interval=config.interval, stream=sys.stdout)
    reporter.start()
    logger.info("reporting every %gs; Ctrl-C to end", reporter.interval)

    try:
        while not stop.wait(timeout=1.0):
            if not reporter.is_running:
                break
    except KeyboardInterrupt:
        pass
    finally:
        reporter.stop()
        source.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for readtop."""
    config = parse_args(argv)

    if config.tui:
        from textual.logging import TextualHandler

        setup_logger(level=config.log_level, handler=TextualHandler())
    else:
        setup_logger(level=config.log_level)

    aggregator = IntervalAggregator()
    try:
        source = start_source(config, aggregator.feed)
    except SourceUnavailableError as exc:
        logger.error("%s", exc)
        return 1

    if config.tui:
        from readtop.app import ReadtopApp

        ReadtopApp(aggregator, source, config.interval).run()
    else:
        run_report(config, aggregator, source)
    return 0
