"""Throughput sampling for the speed-test engine.

SampleAggregator polls the stream slots on a fixed tick from a background
thread, derives the cumulative throughput since phase start and appends it to
the phase history.
"""

import logging
import threading
import time
from collections.abc import Callable

from common.protocol import LOG_PROGRESS_INTERVAL, TRACE, Phase
from session.result import ThroughputSample
from session.stats import throughput_mbps
from session.worker import StreamSlots

logger = logging.getLogger(__name__)

# Called with each new sample and the phase's current byte total
SampleSink = Callable[[ThroughputSample, int], None]


class SampleAggregator:
    """Periodic sampler over one phase's StreamSlots."""

    def __init__(
        self,
        phase: Phase,
        slots: StreamSlots,
        interval_s: float,
        sink: SampleSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.phase = phase
        self.history: list[ThroughputSample] = []
        self._slots = slots
        self._interval_s = interval_s
        self._sink = sink
        self._clock = clock
        self._phase_start: float | None = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._ticks = 0

    def start(self, phase_start: float) -> "SampleAggregator":
        """Begin ticking in a daemon thread. Returns self as the handle."""
        self._phase_start = phase_start
        self._thread = threading.Thread(
            target=self._run, name=f"aggregator-{self.phase.value}", daemon=True
        )
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stopped.wait(self._interval_s):
            self.tick()

    def tick(self) -> ThroughputSample | None:
        """Take one sample. Returns None if stopped or no time has elapsed."""
        with self._lock:
            if self._stopped.is_set() or self._phase_start is None:
                return None
            total = self._slots.total()
            elapsed_s = self._clock() - self._phase_start
            mbps = throughput_mbps(total, elapsed_s)
            if mbps is None:
                return None
            sample = ThroughputSample(elapsed_ms=elapsed_s * 1000, mbps=mbps)
            self.history.append(sample)
            self._ticks += 1

        logger.log(TRACE, f"{self.phase.value}: {sample.mbps:.2f} Mbps at {sample.elapsed_ms:.0f}ms")
        if self._ticks % LOG_PROGRESS_INTERVAL == 0:
            logger.debug(f"{self.phase.value}: {sample.mbps:.2f} Mbps ({total} bytes)")

        if self._sink is not None:
            try:
                self._sink(sample, total)
            except Exception as e:
                logger.warning(f"Sample sink failed: {e}")
        return sample

    def stop(self) -> None:
        """Stop ticking and wait for the timer thread. Later ticks are no-ops."""
        with self._lock:
            self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def authoritative_mbps(self, phase_end: float) -> float | None:
        """Throughput over the whole phase from the final byte total."""
        if self._phase_start is None:
            return None
        return throughput_mbps(self._slots.total(), phase_end - self._phase_start)
