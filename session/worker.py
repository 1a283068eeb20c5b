"""Stream workers for the speed-test engine.

Contains:
- StreamSlots: Per-stream byte counters shared between workers and the aggregator
- upload_payload: Build the fixed upload chunk
- run_download: Drive one streamed download into its slot
- run_upload: Send upload chunks into its slot while the continue flag is set

Each slot has exactly one writer (its worker) during a phase. The aggregator
reads counters without a lock and tolerates slightly stale values.
"""

import logging
import threading

from common.protocol import TRACE, Transport

logger = logging.getLogger(__name__)

# Repeating byte pattern length for upload payloads
_PATTERN_LENGTH = 1024


class StreamSlots:
    """Fixed-length array of per-stream counters."""

    def __init__(self, count: int) -> None:
        self.count = count
        self.bytes: list[int] = [0] * count
        self.active: list[bool] = [False] * count
        self.errors: list[Exception | None] = [None] * count

    def reset(self) -> None:
        """Zero every slot. Only call while no worker is running."""
        self.bytes = [0] * self.count
        self.active = [False] * self.count
        self.errors = [None] * self.count

    def add(self, index: int, nbytes: int) -> None:
        self.bytes[index] += nbytes

    def total(self) -> int:
        return sum(self.bytes)

    def failed(self) -> int:
        return sum(1 for e in self.errors if e is not None)


def upload_payload(size: int) -> bytes:
    """Return size bytes of a repeating 0..254 pattern."""
    pattern = bytes(i % 255 for i in range(_PATTERN_LENGTH))
    repeats = size // _PATTERN_LENGTH + 1
    return (pattern * repeats)[:size]


def run_download(
    transport: Transport,
    slots: StreamSlots,
    index: int,
    byte_count: int,
    cancel_event: threading.Event | None = None,
) -> None:
    """Download byte_count bytes, counting each chunk into slots[index].

    Never raises: on a transfer error the worker stops and the bytes counted
    so far remain in the slot.
    """
    slots.active[index] = True
    try:
        for chunk in transport.open_download(byte_count):
            slots.add(index, len(chunk))
            logger.log(TRACE, f"Stream {index}: +{len(chunk)} bytes ({slots.bytes[index]} total)")
            if cancel_event is not None and cancel_event.is_set():
                logger.debug(f"Stream {index}: download cancelled")
                break
    except Exception as e:
        slots.errors[index] = e
        logger.warning(f"Stream {index} failed after {slots.bytes[index]} bytes: {e}")
    finally:
        slots.active[index] = False


def run_upload(
    transport: Transport,
    slots: StreamSlots,
    index: int,
    payload: bytes,
    continue_flag: threading.Event,
) -> None:
    """Send payload repeatedly while continue_flag is set.

    The flag is only checked between chunks. A failed chunk ends the loop
    without retry; the chunks already acknowledged stay counted.
    """
    slots.active[index] = True
    try:
        while continue_flag.is_set():
            try:
                transport.send_upload_chunk(payload)
            except Exception as e:
                slots.errors[index] = e
                logger.warning(f"Stream {index} upload failed after {slots.bytes[index]} bytes: {e}")
                break
            slots.add(index, len(payload))
            logger.log(TRACE, f"Stream {index}: sent chunk ({slots.bytes[index]} total)")
    finally:
        slots.active[index] = False
