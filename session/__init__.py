"""Probe session package for the speed-test engine.

This package runs and reports a speed-test session:
- Concurrent download/upload stream workers over shared byte counters
- Periodic throughput sampling
- Latency statistics (mean/min/max, jitter, packet loss)
- Streaming/gaming/conferencing quality tiers
- Text, JSON and SVG reporting
"""

from session.aggregator import SampleAggregator
from session.quality import QualityReport, Tier, UseCase, classify
from session.report import SessionReport
from session.result import (
    LatencySample,
    LatencyStats,
    PhaseResult,
    SessionBusyError,
    SessionError,
    SessionResult,
    ThroughputSample,
)
from session.scheduler import ProbeScheduler, ProbeSession, SessionObserver
from session.worker import StreamSlots, run_download, run_upload

__all__ = [
    "LatencySample",
    "LatencyStats",
    "PhaseResult",
    "ProbeScheduler",
    "ProbeSession",
    "QualityReport",
    "SampleAggregator",
    "SessionBusyError",
    "SessionError",
    "SessionObserver",
    "SessionReport",
    "SessionResult",
    "StreamSlots",
    "ThroughputSample",
    "Tier",
    "UseCase",
    "classify",
    "run_download",
    "run_upload",
]
