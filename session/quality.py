"""Application-quality classification for the speed-test engine.

Thresholds (a missing metric fails every threshold it appears in):

| Use case     | Good                             | Fair                                 |
|--------------|----------------------------------|--------------------------------------|
| Streaming    | dl >= 25, lat < 100              | dl >= 10, lat < 150                  |
| Gaming       | lat < 50, jitter < 20, loss < 1  | lat < 100, jitter < 30, loss < 2     |
| Conferencing | ul >= 5, dl >= 5, lat < 150      | ul >= 2.5, dl >= 2.5, lat < 200      |
"""

from dataclasses import dataclass
from enum import Enum


class Tier(Enum):
    """Suitability of the connection for a use case."""

    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class UseCase(Enum):
    STREAMING = "streaming"
    GAMING = "gaming"
    CONFERENCING = "conferencing"


@dataclass(frozen=True)
class QualityVerdict:
    use_case: UseCase
    tier: Tier


@dataclass(frozen=True)
class QualityReport:
    """The three verdicts of one session."""

    streaming: Tier
    gaming: Tier
    conferencing: Tier

    def verdicts(self) -> list[QualityVerdict]:
        return [
            QualityVerdict(UseCase.STREAMING, self.streaming),
            QualityVerdict(UseCase.GAMING, self.gaming),
            QualityVerdict(UseCase.CONFERENCING, self.conferencing),
        ]

    def to_dict(self) -> dict[str, str]:
        return {v.use_case.value: v.tier.value for v in self.verdicts()}


def _lt(value: float | None, limit: float) -> bool:
    return value is not None and value < limit


def _ge(value: float | None, limit: float) -> bool:
    return value is not None and value >= limit


def _streaming(download_mbps: float | None, latency_ms: float | None) -> Tier:
    if _ge(download_mbps, 25) and _lt(latency_ms, 100):
        return Tier.GOOD
    if _ge(download_mbps, 10) and _lt(latency_ms, 150):
        return Tier.FAIR
    return Tier.POOR


def _gaming(latency_ms: float | None, jitter_ms: float | None, packet_loss_pct: float | None) -> Tier:
    if _lt(latency_ms, 50) and _lt(jitter_ms, 20) and _lt(packet_loss_pct, 1):
        return Tier.GOOD
    if _lt(latency_ms, 100) and _lt(jitter_ms, 30) and _lt(packet_loss_pct, 2):
        return Tier.FAIR
    return Tier.POOR


def _conferencing(
    download_mbps: float | None, upload_mbps: float | None, latency_ms: float | None
) -> Tier:
    if _ge(upload_mbps, 5) and _ge(download_mbps, 5) and _lt(latency_ms, 150):
        return Tier.GOOD
    if _ge(upload_mbps, 2.5) and _ge(download_mbps, 2.5) and _lt(latency_ms, 200):
        return Tier.FAIR
    return Tier.POOR


def classify(
    download_mbps: float | None,
    upload_mbps: float | None,
    latency_ms: float | None,
    jitter_ms: float | None,
    packet_loss_pct: float | None,
) -> QualityReport:
    """Classify aggregate metrics into streaming/gaming/conferencing tiers."""
    return QualityReport(
        streaming=_streaming(download_mbps, latency_ms),
        gaming=_gaming(latency_ms, jitter_ms, packet_loss_pct),
        conferencing=_conferencing(download_mbps, upload_mbps, latency_ms),
    )
