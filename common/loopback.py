"""Simulated loopback transport for the speed-test engine.

Lets a full session run without network access: probes sleep for a base
latency plus random jitter (and are dropped at a configurable rate), downloads
and uploads are paced to a fixed per-stream rate.
"""

import logging
import random
import time
from collections.abc import Iterator

from common.protocol import MEGABIT, TRACE
from common.transport import ProbeFailure, TransferError

logger = logging.getLogger(__name__)

LOOPBACK_CHUNK_BYTES = 64 * 1024


class LoopbackTransport:
    """In-process transport with a simulated link."""

    def __init__(
        self,
        stream_rate_mbps: float = 50.0,
        latency_ms: float = 20.0,
        jitter_ms: float = 2.0,
        probe_loss: float = 0.0,
        upload_rate_mbps: float | None = None,
        seed: int | None = None,
    ) -> None:
        if stream_rate_mbps <= 0:
            raise ValueError(f"stream_rate_mbps must be > 0, got {stream_rate_mbps}")
        if not 0.0 <= probe_loss <= 1.0:
            raise ValueError(f"probe_loss must be within 0..1, got {probe_loss}")
        self.stream_rate_mbps = stream_rate_mbps
        self.upload_rate_mbps = upload_rate_mbps or stream_rate_mbps
        self.latency_ms = latency_ms
        self.jitter_ms = jitter_ms
        self.probe_loss = probe_loss
        self._rng = random.Random(seed)
        self._chunk = bytes(LOOPBACK_CHUNK_BYTES)
        logger.info(
            f"Loopback link: {stream_rate_mbps:.1f} Mbps/stream down, "
            f"{self.upload_rate_mbps:.1f} Mbps/stream up, {latency_ms:.1f}ms latency"
        )

    def _transfer_time_s(self, nbytes: int, rate_mbps: float) -> float:
        return nbytes * 8 / (rate_mbps * MEGABIT)

    def probe(self) -> float:
        delay_ms = max(0.0, self.latency_ms + self._rng.uniform(-self.jitter_ms, self.jitter_ms))
        start = time.perf_counter()
        time.sleep(delay_ms / 1000)
        if self._rng.random() < self.probe_loss:
            raise ProbeFailure("Loopback probe dropped")
        return (time.perf_counter() - start) * 1000

    def open_download(self, byte_count: int) -> Iterator[bytes]:
        remaining = byte_count
        while remaining > 0:
            size = min(remaining, LOOPBACK_CHUNK_BYTES)
            time.sleep(self._transfer_time_s(size, self.stream_rate_mbps))
            remaining -= size
            logger.log(TRACE, f"Loopback: delivered {size} bytes ({remaining} remaining)")
            yield self._chunk[:size]

    def send_upload_chunk(self, payload: bytes) -> None:
        if not payload:
            raise TransferError("Loopback upload: no data")
        time.sleep(self._transfer_time_s(len(payload), self.upload_rate_mbps))
