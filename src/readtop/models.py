"""Data models for readtop."""

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import IntFlag


class IOFlag(IntFlag):
    """Attributes of a block I/O request."""

    READ = 1
    WRITE = 2
    DISCARD = 4
    FLUSH = 8
    SYNC = 16
    META = 32
    AHEAD = 64
    FUA = 128

    @classmethod
    def from_rwbs(cls, rwbs: str) -> "IOFlag":
        """
        Decode the kernel's rwbs request description into flags.

        The operation letter (R, W, D, N) may be preceded by F for a preflush;
        an F after it means forced unit access. A lone F is a flush request.
        Unknown letters are ignored.
        """
        flags = cls(0)
        op_seen = False
        for letter in rwbs:
            if letter == "R" and not op_seen:
                flags |= cls.READ
                op_seen = True
            elif letter == "W" and not op_seen:
                flags |= cls.WRITE
                op_seen = True
            elif letter == "D" and not op_seen:
                flags |= cls.DISCARD
                op_seen = True
            elif letter == "N" and not op_seen:
                op_seen = True
            elif letter == "F":
                flags |= cls.FUA if op_seen else cls.FLUSH
            elif letter == "S":
                flags |= cls.SYNC
            elif letter == "M":
                flags |= cls.META
            elif letter == "A":
                flags |= cls.AHEAD
        return flags


@dataclass(slots=True, frozen=True)
class IORecord:
    """A raw block I/O record as delivered by an event source."""

    flags: IOFlag
    byte_count: int
    executable_name: str
    pid: int = 0


@dataclass(slots=True, frozen=True)
class ReadEvent:
    """Bytes read by one executable in one request."""

    executable_name: str
    byte_count: int


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable per-executable read totals for one interval."""

    totals: Mapping[str, int]
    taken_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        """Number of executables with reads in the interval."""
        return len(self.totals)

    def __iter__(self) -> Iterator[str]:
        """Iterate over executable names."""
        return iter(self.totals)

    @property
    def total_bytes(self) -> int:
        """Bytes read by all executables during the interval."""
        return sum(self.totals.values())

    def by_bytes(self) -> list[tuple[str, int]]:
        """Entries ordered by descending total, ties broken by name."""
        return sorted(self.totals.items(), key=lambda item: (-item[1], item[0]))
