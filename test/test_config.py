"""Unit tests for ProbeConfig and progress mapping."""

import pytest

from common.config import ConfigError, ProbeConfig, SchedulerFault
from common.protocol import MIB, Phase, progress_percent


@pytest.mark.unit
class TestProbeConfig:
    """Tests for ProbeConfig defaults and validation."""

    def test_defaults(self) -> None:
        config = ProbeConfig()
        assert config.concurrent_streams == 4
        assert config.download_bytes_per_stream == 25_000_000
        assert config.upload_chunk_bytes == MIB
        assert config.tick_interval_ms == 60
        assert config.min_upload_duration_ms == 3000
        assert config.min_upload_bytes == 5 * MIB
        assert config.latency_sample_count == 10
        assert config.latency_delay_ms == 50
        config.validate()

    def test_derived_values(self) -> None:
        config = ProbeConfig(concurrent_streams=3, download_bytes_per_stream=1000, tick_interval_ms=250)
        assert config.expected_download_bytes == 3000
        assert config.tick_interval_s == 0.25
        assert config.min_upload_duration_s == 3.0

    @pytest.mark.parametrize(
        "field",
        ["concurrent_streams", "download_bytes_per_stream", "upload_chunk_bytes", "tick_interval_ms"],
    )
    def test_positive_fields_reject_zero(self, field: str) -> None:
        with pytest.raises(ConfigError, match=field):
            ProbeConfig(**{field: 0}).validate()

    def test_zero_allowed_for_optional_minimums(self) -> None:
        ProbeConfig(min_upload_duration_ms=0, min_upload_bytes=0, latency_delay_ms=0).validate()

    def test_negative_rejected(self) -> None:
        with pytest.raises(ConfigError):
            ProbeConfig(latency_delay_ms=-1).validate()

    def test_non_integer_rejected(self) -> None:
        with pytest.raises(ConfigError, match="integer"):
            ProbeConfig(concurrent_streams=2.5).validate()  # type: ignore[arg-type]
        with pytest.raises(ConfigError, match="integer"):
            ProbeConfig(concurrent_streams=True).validate()

    def test_config_error_is_scheduler_fault(self) -> None:
        assert issubclass(ConfigError, SchedulerFault)


@pytest.mark.unit
class TestOptionMapping:
    """Tests for camelCase option round trips."""

    def test_from_mapping(self) -> None:
        config = ProbeConfig.from_mapping(
            {"concurrentStreams": 8, "minUploadDurationMs": 5000, "latencyDelayMs": 0}
        )
        assert config.concurrent_streams == 8
        assert config.min_upload_duration_ms == 5000
        assert config.latency_delay_ms == 0
        assert config.download_bytes_per_stream == 25_000_000

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ConfigError, match="streams"):
            ProbeConfig.from_mapping({"streams": 8})

    def test_to_options_names(self) -> None:
        options = ProbeConfig().to_options()
        assert set(options) == {
            "concurrentStreams",
            "downloadBytesPerStream",
            "uploadChunkBytes",
            "tickIntervalMs",
            "uploadTickIntervalMs",
            "minUploadDurationMs",
            "minUploadBytes",
            "latencySampleCount",
            "latencyDelayMs",
        }
        assert ProbeConfig.from_mapping(options) == ProbeConfig()


@pytest.mark.unit
class TestFromEnv:
    """Tests for SPEEDTEST_* environment overrides."""

    def test_overrides(self) -> None:
        config = ProbeConfig.from_env(
            environ={"SPEEDTEST_STREAMS": "6", "SPEEDTEST_MIN_UPLOAD_MS": "1500"}
        )
        assert config.concurrent_streams == 6
        assert config.min_upload_duration_ms == 1500
        assert config.latency_sample_count == 10

    def test_base_is_kept(self) -> None:
        base = ProbeConfig(latency_sample_count=3)
        config = ProbeConfig.from_env(base, environ={"SPEEDTEST_STREAMS": "2"})
        assert config.latency_sample_count == 3
        assert config.concurrent_streams == 2

    def test_empty_values_ignored(self) -> None:
        assert ProbeConfig.from_env(environ={"SPEEDTEST_STREAMS": ""}) == ProbeConfig()

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPEEDTEST_LATENCY_SAMPLES", "4")
        assert ProbeConfig.from_env().latency_sample_count == 4

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigError, match="SPEEDTEST_DOWNLOAD_BYTES"):
            ProbeConfig.from_env(environ={"SPEEDTEST_DOWNLOAD_BYTES": "lots"})


@pytest.mark.unit
class TestProgressPercent:
    """Tests for phase-local to global progress mapping."""

    def test_ranges(self) -> None:
        assert progress_percent(Phase.LATENCY, 0.0) == 0.0
        assert progress_percent(Phase.LATENCY, 1.0) == 15.0
        assert progress_percent(Phase.DOWNLOADING, 0.5) == 35.0
        assert progress_percent(Phase.UPLOADING, 0.0) == 55.0
        assert progress_percent(Phase.COMPLETE, 1.0) == 100.0

    def test_fraction_clamped(self) -> None:
        assert progress_percent(Phase.UPLOADING, 2.5) == 95.0
        assert progress_percent(Phase.DOWNLOADING, -0.1) == 15.0
