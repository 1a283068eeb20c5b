"""pytest configuration and fixtures for speed-testkit tests.

Provides:
- MockTransport: Scripted transport (probe outcomes, mid-stream download
  failures, upload failures after N chunks)
- FakeClock: Manually advanced monotonic clock
- RecordingObserver: SessionObserver that keeps every event
- Markers for unit vs integration tests
"""

import threading
import time
from collections.abc import Callable, Iterator, Sequence

import pytest

from common.config import ProbeConfig
from common.protocol import Phase
from common.transport import TransferError
from session.result import ThroughputSample
from session.scheduler import SessionObserver


class MockTransport:
    """Transport with scripted behaviour.

    probe_results is consumed in call order, the warm-up probe included.
    Each entry is an RTT in ms or an exception to raise; once exhausted,
    probes return default_rtt_ms.

    download_plan is consumed per open_download call. An int entry makes that
    transfer raise TransferError once it has yielded that many bytes; None
    (or an exhausted plan) completes the transfer.

    Uploads succeed until upload_limit chunks have been accepted in total,
    then every call raises TransferError.
    """

    def __init__(
        self,
        probe_results: Sequence[float | Exception] = (),
        default_rtt_ms: float = 10.0,
        download_plan: Sequence[int | None] = (),
        chunk_bytes: int = 100_000,
        download_delay_s: float = 0.0,
        upload_limit: int | None = None,
        upload_delay_s: float = 0.002,
    ) -> None:
        self._probe_results = list(probe_results)
        self.default_rtt_ms = default_rtt_ms
        self._download_plan = list(download_plan)
        self.chunk_bytes = chunk_bytes
        self.download_delay_s = download_delay_s
        self.upload_limit = upload_limit
        self.upload_delay_s = upload_delay_s
        self.probe_calls = 0
        self.download_calls = 0
        self.upload_calls = 0
        self.uploaded_chunks = 0
        self._lock = threading.Lock()

    def probe(self) -> float:
        with self._lock:
            self.probe_calls += 1
            outcome = self._probe_results.pop(0) if self._probe_results else self.default_rtt_ms
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def open_download(self, byte_count: int) -> Iterator[bytes]:
        with self._lock:
            self.download_calls += 1
            fail_after = self._download_plan.pop(0) if self._download_plan else None
        sent = 0
        while sent < byte_count:
            if fail_after is not None and sent >= fail_after:
                raise TransferError(f"Connection reset after {sent} bytes")
            size = min(self.chunk_bytes, byte_count - sent)
            if fail_after is not None:
                size = min(size, fail_after - sent)
            if self.download_delay_s:
                time.sleep(self.download_delay_s)
            sent += size
            yield bytes(size)

    def send_upload_chunk(self, payload: bytes) -> None:
        with self._lock:
            self.upload_calls += 1
            if self.upload_limit is not None and self.uploaded_chunks >= self.upload_limit:
                raise TransferError("Upload rejected")
            self.uploaded_chunks += 1
        if self.upload_delay_s:
            time.sleep(self.upload_delay_s)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingObserver(SessionObserver):
    """Observer that records every progress and sample event."""

    def __init__(self) -> None:
        self.progress: list[tuple[Phase, float]] = []
        self.samples: list[tuple[Phase, ThroughputSample]] = []
        self._lock = threading.Lock()

    def on_progress(self, phase: Phase, percent: float) -> None:
        with self._lock:
            self.progress.append((phase, percent))

    def on_sample(self, phase: Phase, sample: ThroughputSample) -> None:
        with self._lock:
            self.samples.append((phase, sample))


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (runs the CLI)")


@pytest.fixture
def make_transport() -> Callable[..., MockTransport]:
    """Return the MockTransport class as a factory."""
    return MockTransport


@pytest.fixture
def transport() -> MockTransport:
    """Transport where every probe and transfer succeeds."""
    return MockTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def fast_config() -> ProbeConfig:
    """Small session: 4 x 5MB downloads, short upload, no probe spacing."""
    return ProbeConfig(
        concurrent_streams=4,
        download_bytes_per_stream=5_000_000,
        upload_chunk_bytes=64 * 1024,
        tick_interval_ms=10,
        upload_tick_interval_ms=5,
        min_upload_duration_ms=100,
        min_upload_bytes=256 * 1024,
        latency_sample_count=5,
        latency_delay_ms=0,
    )

