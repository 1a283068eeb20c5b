"""Session result types for the speed-test engine.

Contains:
- SessionError: Raised when a session cannot be started
- SessionBusyError: Raised when a session is already running
- LatencySample / ThroughputSample: Immutable measurement records
- LatencyStats: Computed latency statistics in milliseconds
- PhaseResult: Outcome of one throughput phase
- SessionResult: Final result of a probe session
"""

from dataclasses import dataclass, field
from typing import Any

from session.quality import QualityReport


class SessionError(Exception):
    """Raised when a session cannot be started."""

    pass


class SessionBusyError(SessionError):
    """Raised when run_session is called while another session is active."""

    pass


@dataclass(frozen=True)
class LatencySample:
    """One latency probe. rtt_ms is None for a failed probe."""

    timestamp: float
    rtt_ms: float | None
    succeeded: bool


@dataclass(frozen=True)
class ThroughputSample:
    """One aggregator tick."""

    elapsed_ms: float
    mbps: float

    def to_dict(self) -> dict[str, float]:
        return {"elapsedMs": round(self.elapsed_ms, 1), "mbps": round(self.mbps, 3)}


@dataclass(frozen=True)
class LatencyStats:
    """Computed latency statistics in milliseconds.

    mean/min/max/p50/p95 are None when no probe succeeded, jitter_ms is None
    with fewer than two successful probes, packet_loss_pct is None when
    nothing was attempted.
    """

    attempted: int
    succeeded: int
    mean_ms: float | None
    min_ms: float | None
    max_ms: float | None
    jitter_ms: float | None
    packet_loss_pct: float | None
    p50_ms: float | None = None
    p95_ms: float | None = None


@dataclass
class PhaseResult:
    """Outcome of a download or upload phase.

    Attributes:
        mbps: Authoritative throughput, None if no bytes were transferred.
        total_bytes: Bytes counted across all streams (partial credit included).
        elapsed_s: Wall-clock duration of the phase.
        failed_streams: Number of streams that ended with a transfer error.
        history: Aggregator samples, in tick order.
    """

    mbps: float | None = None
    total_bytes: int = 0
    elapsed_s: float = 0.0
    failed_streams: int = 0
    history: list[ThroughputSample] = field(default_factory=list)


def _round(value: float | None, digits: int = 2) -> float | None:
    return None if value is None else round(value, digits)


@dataclass
class SessionResult:
    """Final result of a probe session."""

    latency: LatencyStats
    download: PhaseResult
    upload: PhaseResult
    quality: QualityReport
    started_at: float = 0.0
    elapsed_s: float = 0.0
    cancelled: bool = False

    @property
    def latency_ms(self) -> float | None:
        """Headline latency: the best successful RTT."""
        return self.latency.min_ms

    @property
    def jitter_ms(self) -> float | None:
        return self.latency.jitter_ms

    @property
    def packet_loss_pct(self) -> float | None:
        return self.latency.packet_loss_pct

    @property
    def download_mbps(self) -> float | None:
        return self.download.mbps

    @property
    def upload_mbps(self) -> float | None:
        return self.upload.mbps

    def to_dict(self) -> dict[str, Any]:
        """Return the result as a JSON-serializable dict."""
        return {
            "latency": {
                "mean": _round(self.latency.mean_ms),
                "min": _round(self.latency.min_ms),
                "max": _round(self.latency.max_ms),
            },
            "jitterMs": _round(self.jitter_ms),
            "packetLossPct": self.packet_loss_pct,
            "downloadMbps": _round(self.download_mbps),
            "uploadMbps": _round(self.upload_mbps),
            "quality": self.quality.to_dict(),
            "downloadBytes": self.download.total_bytes,
            "uploadBytes": self.upload.total_bytes,
            "downloadHistory": [s.to_dict() for s in self.download.history],
            "uploadHistory": [s.to_dict() for s in self.upload.history],
            "startedAt": self.started_at,
            "elapsedS": round(self.elapsed_s, 3),
            "cancelled": self.cancelled,
        }
