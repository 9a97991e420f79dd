"""Read-event classification for readtop."""

from collections.abc import Iterable, Iterator

from readtop.models import IOFlag, IORecord, ReadEvent


def classify(record: IORecord) -> ReadEvent | None:
    """Return a ReadEvent for read requests, None for anything else."""
    if not record.flags & IOFlag.READ:
        return None
    return ReadEvent(executable_name=record.executable_name, byte_count=record.byte_count)


def filter_reads(records: Iterable[IORecord]) -> Iterator[ReadEvent]:
    """Yield a ReadEvent for every read request in records."""
    for record in records:
        event = classify(record)
        if event is not None:
            yield event
