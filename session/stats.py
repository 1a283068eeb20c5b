"""Latency and throughput statistics for the speed-test engine.

Pure functions over immutable samples; nothing here keeps state between calls.
"""

import math
from collections.abc import Sequence

from common.protocol import MEGABIT
from session.result import LatencySample, LatencyStats


def successful_rtts(samples: Sequence[LatencySample]) -> list[float]:
    """Return RTTs of the successful samples, in recorded order."""
    return [s.rtt_ms for s in samples if s.succeeded and s.rtt_ms is not None]


def mean_ms(rtts: Sequence[float]) -> float | None:
    if not rtts:
        return None
    return sum(rtts) / len(rtts)


def min_ms(rtts: Sequence[float]) -> float | None:
    return min(rtts) if rtts else None


def max_ms(rtts: Sequence[float]) -> float | None:
    return max(rtts) if rtts else None


def jitter_ms(rtts: Sequence[float]) -> float | None:
    """Population standard deviation of the RTTs (divides by N, not N-1)."""
    if len(rtts) < 2:
        return None
    mean = sum(rtts) / len(rtts)
    variance = sum((r - mean) ** 2 for r in rtts) / len(rtts)
    return math.sqrt(variance)


def packet_loss_pct(attempted: int, succeeded: int) -> float | None:
    """Percentage of failed probes, rounded to one decimal place."""
    if attempted <= 0:
        return None
    return round((attempted - succeeded) / attempted * 100, 1)


def percentile(rtts: Sequence[float], p: float) -> float | None:
    """Nearest-rank-below percentile of the RTTs."""
    if not rtts:
        return None
    sorted_rtts = sorted(rtts)
    idx = int(p / 100 * (len(sorted_rtts) - 1))
    return sorted_rtts[idx]


def throughput_mbps(total_bytes: int, elapsed_s: float) -> float | None:
    """Megabits (10^6 bits) per second, None if no time has elapsed."""
    if elapsed_s <= 0:
        return None
    return (total_bytes * 8 / MEGABIT) / elapsed_s


def summarize(samples: Sequence[LatencySample]) -> LatencyStats:
    """Reduce the latency phase's samples. Every sample counts as one attempt."""
    rtts = successful_rtts(samples)
    return LatencyStats(
        attempted=len(samples),
        succeeded=len(rtts),
        mean_ms=mean_ms(rtts),
        min_ms=min_ms(rtts),
        max_ms=max_ms(rtts),
        jitter_ms=jitter_ms(rtts),
        packet_loss_pct=packet_loss_pct(len(samples), len(rtts)),
        p50_ms=percentile(rtts, 50),
        p95_ms=percentile(rtts, 95),
    )
