"""Protocol definitions for the speed-test engine.

Contains:
- Phase enum for the session state machine
- Transport Protocol for type checking
- Default measurement constants
- Logging configuration
"""

import logging
import os
from collections.abc import Iterator
from enum import Enum
from typing import Protocol

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Progress logging interval in aggregator ticks (configurable via envvar)
LOG_PROGRESS_INTERVAL = int(os.environ.get("SPEEDTEST_LOG_INTERVAL", "20"))

MEGABIT = 1_000_000
MIB = 1024 * 1024


class Phase(Enum):
    """Lifecycle of a probe session."""

    IDLE = "idle"
    LATENCY = "latency"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    FAILED = "failed"


class Transport(Protocol):
    """Protocol for the transfer primitives a session drives.

    Implementations raise ProbeFailure / TransferError from common.transport.
    """

    def probe(self) -> float: ...
    def open_download(self, byte_count: int) -> Iterator[bytes]: ...
    def send_upload_chunk(self, payload: bytes) -> None: ...


# Default session parameters
DEFAULT_CONCURRENT_STREAMS = 4
DEFAULT_DOWNLOAD_BYTES_PER_STREAM = 25_000_000  # 25MB per stream x 4 = ~100MB
DEFAULT_UPLOAD_CHUNK_BYTES = MIB
DEFAULT_TICK_INTERVAL_MS = 60
DEFAULT_UPLOAD_TICK_INTERVAL_MS = 50
DEFAULT_MIN_UPLOAD_DURATION_MS = 3000
DEFAULT_MIN_UPLOAD_BYTES = 5 * MIB
DEFAULT_LATENCY_SAMPLE_COUNT = 10
DEFAULT_LATENCY_DELAY_MS = 50

# Global progress sub-ranges (percent) per phase
PROGRESS_RANGES: dict[Phase, tuple[float, float]] = {
    Phase.LATENCY: (0.0, 15.0),
    Phase.DOWNLOADING: (15.0, 55.0),
    Phase.UPLOADING: (55.0, 95.0),
    Phase.COMPLETE: (95.0, 100.0),
}


def progress_percent(phase: Phase, fraction: float) -> float:
    """Map a phase-local fraction (clamped to 0..1) onto the global 0-100 range."""
    low, high = PROGRESS_RANGES[phase]
    fraction = min(max(fraction, 0.0), 1.0)
    return low + (high - low) * fraction
