"""Runtime configuration for readtop."""

import logging
from dataclasses import dataclass

# Reporter cadence
DEFAULT_INTERVAL = 5.0
MIN_INTERVAL = 0.1

# procio source
DEFAULT_POLL_RATE = 1.0

# bpf source
PERF_PAGE_CNT = 64
POLL_TIMEOUT_MS = 100

# Live view
UI_REFRESH_SEC = 0.5

SOURCES = ("auto", "bpf", "procio")


@dataclass(slots=True, frozen=True)
class ProbeConfig:
    """Settings for one readtop run."""

    interval: float = DEFAULT_INTERVAL
    source: str = "auto"
    tui: bool = False
    log_level: int = logging.INFO
    poll_rate: float = DEFAULT_POLL_RATE
