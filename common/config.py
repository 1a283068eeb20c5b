"""Session configuration for the speed-test engine.

Contains:
- SchedulerFault: Base for errors in the scheduler's own control logic
- ConfigError: Raised when a ProbeConfig is invalid
- ProbeConfig: Parameters for one probe session
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

from common.protocol import (
    DEFAULT_CONCURRENT_STREAMS,
    DEFAULT_DOWNLOAD_BYTES_PER_STREAM,
    DEFAULT_LATENCY_DELAY_MS,
    DEFAULT_LATENCY_SAMPLE_COUNT,
    DEFAULT_MIN_UPLOAD_BYTES,
    DEFAULT_MIN_UPLOAD_DURATION_MS,
    DEFAULT_TICK_INTERVAL_MS,
    DEFAULT_UPLOAD_CHUNK_BYTES,
    DEFAULT_UPLOAD_TICK_INTERVAL_MS,
)


class SchedulerFault(Exception):
    """Raised when the scheduler itself cannot run a session."""

    pass


class ConfigError(SchedulerFault):
    """Raised when session configuration is invalid."""

    pass


# camelCase option name -> ProbeConfig field
_OPTION_NAMES = {
    "concurrentStreams": "concurrent_streams",
    "downloadBytesPerStream": "download_bytes_per_stream",
    "uploadChunkBytes": "upload_chunk_bytes",
    "tickIntervalMs": "tick_interval_ms",
    "uploadTickIntervalMs": "upload_tick_interval_ms",
    "minUploadDurationMs": "min_upload_duration_ms",
    "minUploadBytes": "min_upload_bytes",
    "latencySampleCount": "latency_sample_count",
    "latencyDelayMs": "latency_delay_ms",
}

# Environment variable -> ProbeConfig field
_ENV_NAMES = {
    "SPEEDTEST_STREAMS": "concurrent_streams",
    "SPEEDTEST_DOWNLOAD_BYTES": "download_bytes_per_stream",
    "SPEEDTEST_UPLOAD_CHUNK_BYTES": "upload_chunk_bytes",
    "SPEEDTEST_TICK_MS": "tick_interval_ms",
    "SPEEDTEST_UPLOAD_TICK_MS": "upload_tick_interval_ms",
    "SPEEDTEST_MIN_UPLOAD_MS": "min_upload_duration_ms",
    "SPEEDTEST_MIN_UPLOAD_BYTES": "min_upload_bytes",
    "SPEEDTEST_LATENCY_SAMPLES": "latency_sample_count",
    "SPEEDTEST_LATENCY_DELAY_MS": "latency_delay_ms",
}

# Fields that may legitimately be zero
_NON_NEGATIVE = {"min_upload_duration_ms", "min_upload_bytes", "latency_delay_ms"}


@dataclass(frozen=True)
class ProbeConfig:
    """Parameters for a probe session."""

    concurrent_streams: int = DEFAULT_CONCURRENT_STREAMS
    download_bytes_per_stream: int = DEFAULT_DOWNLOAD_BYTES_PER_STREAM
    upload_chunk_bytes: int = DEFAULT_UPLOAD_CHUNK_BYTES
    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    upload_tick_interval_ms: int = DEFAULT_UPLOAD_TICK_INTERVAL_MS
    min_upload_duration_ms: int = DEFAULT_MIN_UPLOAD_DURATION_MS
    min_upload_bytes: int = DEFAULT_MIN_UPLOAD_BYTES
    latency_sample_count: int = DEFAULT_LATENCY_SAMPLE_COUNT
    latency_delay_ms: int = DEFAULT_LATENCY_DELAY_MS

    def validate(self) -> None:
        """Check every field is an integer in range.

        Raises:
            ConfigError: On the first invalid field.
        """
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{f.name} must be an integer, got {value!r}")
            if f.name in _NON_NEGATIVE:
                if value < 0:
                    raise ConfigError(f"{f.name} must be >= 0, got {value}")
            elif value <= 0:
                raise ConfigError(f"{f.name} must be > 0, got {value}")

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000

    @property
    def upload_tick_interval_s(self) -> float:
        return self.upload_tick_interval_ms / 1000

    @property
    def min_upload_duration_s(self) -> float:
        return self.min_upload_duration_ms / 1000

    @property
    def latency_delay_s(self) -> float:
        return self.latency_delay_ms / 1000

    @property
    def expected_download_bytes(self) -> int:
        return self.download_bytes_per_stream * self.concurrent_streams

    def to_options(self) -> dict[str, int]:
        """Return the config as camelCase options."""
        return {option: getattr(self, name) for option, name in _OPTION_NAMES.items()}

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "ProbeConfig":
        """Build a config from camelCase options; missing keys keep defaults.

        Raises:
            ConfigError: If an option name is not recognized.
        """
        unknown = sorted(set(options) - set(_OPTION_NAMES))
        if unknown:
            raise ConfigError(f"Unknown config option(s): {', '.join(unknown)}")
        return cls(**{_OPTION_NAMES[k]: v for k, v in options.items()})

    @classmethod
    def from_env(
        cls, base: "ProbeConfig | None" = None, environ: Mapping[str, str] | None = None
    ) -> "ProbeConfig":
        """Overlay SPEEDTEST_* environment variables on base (or defaults).

        Raises:
            ConfigError: If a variable is not an integer.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, int] = {}
        for var, name in _ENV_NAMES.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                overrides[name] = int(raw)
            except ValueError:
                raise ConfigError(f"{var} must be an integer, got {raw!r}") from None
        return replace(base or cls(), **overrides)
