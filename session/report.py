"""Session reporting for the speed-test engine.

Contains:
- sparkline: Render a throughput history as a one-line graph
- SessionReport: Report after a probe session completes
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass

from common.report import Report
from session.result import SessionResult, ThroughputSample

_BARS = "▁▂▃▄▅▆▇█"

SPARKLINE_WIDTH = 40

# Fewer probes than this make jitter/loss figures unreliable
MIN_RELIABLE_PROBES = 5


def sparkline(history: Sequence[ThroughputSample], width: int = SPARKLINE_WIDTH) -> str:
    """Render mbps over time as block characters, downsampled to width."""
    if not history:
        return ""
    if len(history) > width:
        step = len(history) / width
        history = [history[int(i * step)] for i in range(width)]
    peak = max(s.mbps for s in history)
    if peak <= 0:
        return _BARS[0] * len(history)
    top = len(_BARS) - 1
    return "".join(_BARS[round(s.mbps / peak * top)] for s in history)


def _ms(value: float | None) -> str:
    return "--" if value is None else f"{value:.2f}ms"


def _mbps(value: float | None) -> str:
    return "--" if value is None else f"{value:.2f} Mbps"


@dataclass
class SessionReport(Report):
    """Report after a probe session completes."""

    result: SessionResult

    def print(self) -> None:
        """Print the session report."""
        r = self.result
        lat = r.latency

        status = "CANCELLED" if r.cancelled else "COMPLETE"
        print(f"Session: {status} ({r.elapsed_s:.1f}s)")

        if lat.succeeded:
            print(
                f"Latency: {_ms(lat.min_ms)} (avg={_ms(lat.mean_ms)} max={_ms(lat.max_ms)} "
                f"p50={_ms(lat.p50_ms)} p95={_ms(lat.p95_ms)})"
            )
        else:
            print(f"Latency: -- (0/{lat.attempted} probes succeeded)")
        loss = "--" if lat.packet_loss_pct is None else f"{lat.packet_loss_pct:.1f}%"
        print(f"Jitter: {_ms(lat.jitter_ms)}  Packet loss: {loss} (n={lat.attempted})")
        if lat.attempted < MIN_RELIABLE_PROBES:
            print("(Note: few latency probes; jitter and loss may not be representative)")

        for label, phase in (("Download", r.download), ("Upload", r.upload)):
            line = f"{label}: {_mbps(phase.mbps)}"
            if phase.total_bytes:
                line += f" ({phase.total_bytes / 1_000_000:.1f} MB in {phase.elapsed_s:.1f}s)"
            if phase.failed_streams:
                line += f" [{phase.failed_streams} stream(s) failed]"
            print(line)
            graph = sparkline(phase.history)
            if graph:
                print(f"         {graph}")

        q = r.quality
        print(
            f"Quality: streaming={q.streaming.value} gaming={q.gaming.value} "
            f"conferencing={q.conferencing.value}"
        )

    def success(self) -> bool:
        """Return True if both throughput phases produced a measurement."""
        r = self.result
        return not r.cancelled and r.download_mbps is not None and r.upload_mbps is not None

    def to_json(self, indent: int | None = 2, share_url: str | None = None) -> str:
        """Serialize the result, adding shareUrl when a result card URL is given."""
        data = self.result.to_dict()
        if share_url is not None:
            data["shareUrl"] = share_url
        return json.dumps(data, indent=indent)
