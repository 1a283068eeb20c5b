"""Probe session orchestration for the speed-test engine.

Contains:
- SessionObserver: Receives progress and live throughput samples
- ProbeSession: State of one running session
- ProbeScheduler: Runs Latency -> Download -> Upload -> Finalize

A transfer error only ends its own stream. Anything that goes wrong in the
scheduler's own control flow (e.g. an invalid config) moves the session to
FAILED and propagates unchanged to the caller.
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from common.config import ProbeConfig
from common.protocol import Phase, Transport, progress_percent
from session.aggregator import SampleAggregator
from session.quality import classify
from session.result import (
    LatencySample,
    LatencyStats,
    PhaseResult,
    SessionBusyError,
    SessionResult,
    ThroughputSample,
)
from session.stats import summarize
from session.worker import StreamSlots, run_download, run_upload, upload_payload

logger = logging.getLogger(__name__)


class SessionObserver:
    """Receives session events. Override only what you need.

    Callbacks run on scheduler or aggregator threads; exceptions they raise
    are logged and otherwise ignored.
    """

    def on_progress(self, phase: Phase, percent: float) -> None:
        pass

    def on_sample(self, phase: Phase, sample: ThroughputSample) -> None:
        pass


@dataclass
class ProbeSession:
    """State of one session. Owned by the scheduler that runs it."""

    config: ProbeConfig
    started_at: float
    phase: Phase = Phase.IDLE
    slots: StreamSlots | None = None
    latency_samples: list[LatencySample] = field(default_factory=list)
    continue_flag: threading.Event = field(default_factory=threading.Event)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class ProbeScheduler:
    """Runs probe sessions against one transport, one session at a time."""

    def __init__(
        self,
        transport: Transport,
        observer: SessionObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.observer = observer or SessionObserver()
        self._clock = clock
        self._lock = threading.Lock()
        self._session: ProbeSession | None = None

    @property
    def session(self) -> ProbeSession | None:
        """The current (or most recent) session."""
        return self._session

    @property
    def phase(self) -> Phase:
        return self._session.phase if self._session else Phase.IDLE

    def run_session(self, config: ProbeConfig) -> SessionResult:
        """Run a full session and block until it finishes.

        Raises:
            SessionBusyError: If another session is running on this scheduler.
            ConfigError: If config is invalid (session ends FAILED).
        """
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError("A probe session is already running")
        try:
            session = ProbeSession(config=config, started_at=time.time())
            self._session = session
            try:
                return self._run(session)
            except Exception as e:
                session.phase = Phase.FAILED
                logger.error(f"Session failed: {e}")
                raise
        finally:
            self._lock.release()

    def cancel(self) -> None:
        """Ask the running session to stop early (best effort)."""
        session = self._session
        if session is None or session.phase in (Phase.COMPLETE, Phase.FAILED):
            return
        logger.info("Cancelling session")
        session.cancel_event.set()
        session.continue_flag.clear()

    # -------------------------------------------------------------------------
    # Observer helpers
    # -------------------------------------------------------------------------

    def _progress(self, phase: Phase, fraction: float) -> None:
        try:
            self.observer.on_progress(phase, progress_percent(phase, fraction))
        except Exception as e:
            logger.warning(f"Progress observer failed: {e}")

    def _sample(self, phase: Phase, sample: ThroughputSample) -> None:
        try:
            self.observer.on_sample(phase, sample)
        except Exception as e:
            logger.warning(f"Sample observer failed: {e}")

    def _enter(self, session: ProbeSession, phase: Phase) -> None:
        session.phase = phase
        logger.info(f"Phase: {phase.value}")

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _run(self, session: ProbeSession) -> SessionResult:
        config = session.config
        config.validate()
        session.slots = StreamSlots(config.concurrent_streams)
        start = self._clock()

        logger.info(
            f"Starting session ({config.concurrent_streams} streams, "
            f"{config.download_bytes_per_stream} bytes/stream down, "
            f"{config.upload_chunk_bytes} byte upload chunks)"
        )

        latency = self._latency_phase(session)
        download = PhaseResult() if session.cancelled else self._download_phase(session)
        upload = PhaseResult() if session.cancelled else self._upload_phase(session)

        self._progress(Phase.COMPLETE, 0.0)
        quality = classify(
            download.mbps,
            upload.mbps,
            latency.min_ms,
            latency.jitter_ms,
            latency.packet_loss_pct,
        )
        result = SessionResult(
            latency=latency,
            download=download,
            upload=upload,
            quality=quality,
            started_at=session.started_at,
            elapsed_s=self._clock() - start,
            cancelled=session.cancelled,
        )
        self._enter(session, Phase.COMPLETE)
        self._progress(Phase.COMPLETE, 1.0)
        logger.info(
            f"Session complete in {result.elapsed_s:.1f}s"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    def _latency_phase(self, session: ProbeSession) -> LatencyStats:
        config = session.config
        self._enter(session, Phase.LATENCY)
        self._progress(Phase.LATENCY, 0.0)

        # Warm-up: absorbs connection setup, never recorded
        try:
            self.transport.probe()
        except Exception as e:
            logger.debug(f"Warm-up probe failed: {e}")

        count = config.latency_sample_count
        for i in range(count):
            if session.cancelled:
                break
            timestamp = time.time()
            try:
                rtt_ms = self.transport.probe()
            except Exception as e:
                logger.warning(f"Probe {i + 1}/{count} failed: {e}")
                session.latency_samples.append(LatencySample(timestamp, None, False))
            else:
                logger.debug(f"Probe {i + 1}/{count}: {rtt_ms:.2f}ms")
                session.latency_samples.append(LatencySample(timestamp, rtt_ms, True))
            self._progress(Phase.LATENCY, (i + 1) / count)
            if i < count - 1 and config.latency_delay_ms > 0:
                session.cancel_event.wait(config.latency_delay_s)

        stats = summarize(session.latency_samples)
        if stats.min_ms is None:
            logger.warning("No latency probe succeeded")
        else:
            logger.info(
                f"Latency: min={stats.min_ms:.2f}ms "
                f"({stats.succeeded}/{stats.attempted} probes, loss={stats.packet_loss_pct}%)"
            )
        return stats

    def _download_phase(self, session: ProbeSession) -> PhaseResult:
        config = session.config
        slots = session.slots
        assert slots is not None
        self._enter(session, Phase.DOWNLOADING)
        slots.reset()
        expected = config.expected_download_bytes

        def sink(sample: ThroughputSample, total: int) -> None:
            self._sample(Phase.DOWNLOADING, sample)
            self._progress(Phase.DOWNLOADING, total / expected)

        phase_start = self._clock()
        aggregator = SampleAggregator(
            Phase.DOWNLOADING, slots, config.tick_interval_s, sink, self._clock
        ).start(phase_start)
        try:
            with ThreadPoolExecutor(
                max_workers=config.concurrent_streams, thread_name_prefix="download"
            ) as pool:
                futures = [
                    pool.submit(
                        run_download,
                        self.transport,
                        slots,
                        i,
                        config.download_bytes_per_stream,
                        session.cancel_event,
                    )
                    for i in range(config.concurrent_streams)
                ]
                wait(futures)
        finally:
            aggregator.stop()
        phase_end = self._clock()

        _log_worker_crashes(futures)
        self._progress(Phase.DOWNLOADING, 1.0)
        return _phase_result(aggregator, slots, phase_start, phase_end)

    def _upload_target_met(self, session: ProbeSession, phase_start: float) -> bool:
        config = session.config
        slots = session.slots
        assert slots is not None
        elapsed_ms = (self._clock() - phase_start) * 1000
        return elapsed_ms >= config.min_upload_duration_ms and slots.total() >= config.min_upload_bytes

    def _upload_phase(self, session: ProbeSession) -> PhaseResult:
        config = session.config
        slots = session.slots
        assert slots is not None
        self._enter(session, Phase.UPLOADING)
        slots.reset()
        payload = upload_payload(config.upload_chunk_bytes)
        min_duration_s = config.min_upload_duration_s

        def sink(sample: ThroughputSample, _total: int) -> None:
            self._sample(Phase.UPLOADING, sample)
            if min_duration_s > 0:
                self._progress(Phase.UPLOADING, sample.elapsed_ms / 1000 / min_duration_s)

        session.continue_flag.set()
        phase_start = self._clock()
        aggregator = SampleAggregator(
            Phase.UPLOADING, slots, config.upload_tick_interval_s, sink, self._clock
        ).start(phase_start)
        try:
            with ThreadPoolExecutor(
                max_workers=config.concurrent_streams, thread_name_prefix="upload"
            ) as pool:
                futures = [
                    pool.submit(
                        run_upload, self.transport, slots, i, payload, session.continue_flag
                    )
                    for i in range(config.concurrent_streams)
                ]
                pending: set[Future[None]] = set(futures)
                while pending:
                    if session.continue_flag.is_set() and (
                        session.cancelled or self._upload_target_met(session, phase_start)
                    ):
                        logger.debug(f"Stopping upload streams after {slots.total()} bytes")
                        session.continue_flag.clear()
                    _, pending = wait(pending, timeout=config.upload_tick_interval_s)
        finally:
            session.continue_flag.clear()
            aggregator.stop()
        phase_end = self._clock()

        _log_worker_crashes(futures)
        self._progress(Phase.UPLOADING, 1.0)
        return _phase_result(aggregator, slots, phase_start, phase_end)


def _log_worker_crashes(futures: list[Future[None]]) -> None:
    for i, future in enumerate(futures):
        exc = future.exception()
        if exc is not None:
            logger.error(f"Stream {i} worker crashed: {exc}")


def _phase_result(
    aggregator: SampleAggregator, slots: StreamSlots, phase_start: float, phase_end: float
) -> PhaseResult:
    total = slots.total()
    mbps = aggregator.authoritative_mbps(phase_end) if total > 0 else None
    result = PhaseResult(
        mbps=mbps,
        total_bytes=total,
        elapsed_s=phase_end - phase_start,
        failed_streams=slots.failed(),
        history=list(aggregator.history),
    )
    if mbps is None:
        logger.warning(f"{aggregator.phase.value}: no data transferred")
    else:
        logger.info(
            f"{aggregator.phase.value}: {mbps:.2f} Mbps ({total} bytes in {result.elapsed_s:.2f}s, "
            f"{result.failed_streams}/{slots.count} streams failed)"
        )
    return result
