"""
Unit tests for container stats decoding.
"""

from datetime import datetime, timezone

import pytest

from dockwatch.telemetry.schemas import StatsCounters, StatsPayload, Trend
from dockwatch.telemetry.stats import (
    MetricsHistory,
    classify_trend,
    counters_from_payload,
    cpu_percent,
    decode,
    decode_payload,
    format_bytes,
    format_sample,
)


class TestFormatBytes:
    """Test human-readable byte formatting."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0 B"),
            (-5, "0 B"),
            (512, "512.0 B"),
            (1024, "1.0 KB"),
            (1536, "1.5 KB"),
            (1048576, "1.0 MB"),
            (1073741824, "1.0 GB"),
            (268435456, "256.0 MB"),
        ],
    )
    def test_format_bytes(self, value, expected):
        assert format_bytes(value) == expected

    def test_rounding(self):
        assert format_bytes(1234567) == "1.18 MB"
        assert format_bytes(1234567, decimals=0) == "1.0 MB"


class TestCpuPercent:
    """Test CPU percentage derivation."""

    def test_basic_delta(self):
        previous = StatsCounters(cpu_total=100, system_cpu=1000, online_cpus=2)
        current = StatsCounters(cpu_total=200, system_cpu=2000, online_cpus=2)

        # 100 / 1000 * 2 cores * 100
        assert cpu_percent(previous, current) == pytest.approx(20.0)

    @pytest.mark.parametrize(
        "cpu,system",
        [(0, 1000), (-50, 1000), (100, 0), (100, -10)],
    )
    def test_non_positive_delta_clamps_to_zero(self, cpu, system):
        previous = StatsCounters(cpu_total=1000, system_cpu=10000)
        current = StatsCounters(cpu_total=1000 + cpu, system_cpu=10000 + system)

        assert cpu_percent(previous, current) == 0.0

    def test_can_exceed_one_hundred_on_multicore(self):
        previous = StatsCounters(cpu_total=0, system_cpu=0, online_cpus=4)
        current = StatsCounters(cpu_total=900, system_cpu=1000, online_cpus=4)

        assert cpu_percent(previous, current) == pytest.approx(360.0)


class TestCounters:
    """Test counter extraction from stats bodies."""

    def test_sums_all_interfaces(self, stats_body):
        counters = counters_from_payload(StatsPayload.model_validate(stats_body()))

        assert counters.network_rx_bytes == 1024 + 512
        assert counters.network_tx_bytes == 2048 + 256

    def test_blkio_read_write_only(self, stats_body):
        counters = counters_from_payload(StatsPayload.model_validate(stats_body()))

        assert counters.disk_read_bytes == 4096
        assert counters.disk_write_bytes == 8192

    def test_missing_optional_sections(self):
        payload = StatsPayload.model_validate(
            {
                "cpu_stats": {"cpu_usage": {"total_usage": 10}, "system_cpu_usage": 100},
                "memory_stats": {"usage": 50, "limit": 100},
                "blkio_stats": {"io_service_bytes_recursive": None},
            }
        )

        counters = counters_from_payload(payload)

        assert counters.network_rx_bytes == 0
        assert counters.network_tx_bytes == 0
        assert counters.disk_read_bytes == 0
        assert counters.disk_write_bytes == 0

    def test_cpu_count_fallbacks(self, stats_body):
        body = stats_body(online_cpus=None)
        body["cpu_stats"]["cpu_usage"]["percpu_usage"] = [1, 2, 3]

        assert counters_from_payload(StatsPayload.model_validate(body)).online_cpus == 3

        body["cpu_stats"]["cpu_usage"].pop("percpu_usage")
        assert counters_from_payload(StatsPayload.model_validate(body)).online_cpus == 1

    def test_read_timestamp_parsed(self, stats_body):
        counters = counters_from_payload(StatsPayload.model_validate(stats_body()))

        assert counters.read_at == datetime(2025, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


class TestDecode:
    """Test metric sample derivation."""

    def test_decode_payload(self, stats_body):
        sample = decode_payload(StatsPayload.model_validate(stats_body()))

        assert sample.cpu_percent == 20.0
        assert sample.memory_usage == 268435456
        assert sample.memory_limit == 536870912
        assert sample.memory_percent == 50.0
        assert sample.network_rx_bytes == 1536
        assert sample.disk_write_bytes == 8192
        assert sample.timestamp.year == 2025

    def test_zero_memory_limit(self):
        sample = decode(StatsCounters(), StatsCounters(memory_usage=100, memory_limit=0))

        assert sample.memory_percent == 0.0

    def test_format_sample(self, stats_body):
        shown = format_sample(decode_payload(StatsPayload.model_validate(stats_body())))

        assert shown["cpu"] == "20.00%"
        assert shown["memory"] == "256.0 MB / 512.0 MB"
        assert shown["memory_percent"] == "50.00%"
        assert shown["disk_read"] == "4.0 KB"


class TestClassifyTrend:
    """Test trend classification over the recent window."""

    def test_too_few_values(self):
        assert classify_trend([]) == Trend.STABLE
        assert classify_trend([10.0]) == Trend.STABLE

    def test_increasing(self):
        assert classify_trend([10.0, 11.0, 12.0, 13.0, 14.0]) == Trend.INCREASING

    def test_decreasing(self):
        assert classify_trend([50.0, 40.0, 30.0]) == Trend.DECREASING

    def test_small_change_is_stable(self):
        assert classify_trend([100.0, 101.0, 102.0, 103.0, 104.0]) == Trend.STABLE

    def test_only_last_window_counts(self):
        # Early spike falls outside the five-sample window
        values = [1.0, 100.0, 100.0, 100.0, 100.0, 100.0]
        assert classify_trend(values) == Trend.STABLE


class TestMetricsHistory:
    """Test bounded per-container history."""

    def test_ring_keeps_newest_twenty(self, stats_body):
        history = MetricsHistory()

        for i in range(25):
            body = stats_body(usage=i + 1)
            history.record("abc", StatsPayload.model_validate(body))

        samples = history.samples("abc")
        assert len(samples) == 20
        assert samples[0].memory_usage == 6
        assert samples[-1].memory_usage == 25
        assert history.latest("abc").memory_usage == 25

    def test_uses_previous_poll_counters(self, stats_body):
        """Test the second sample is decoded against the first poll, not precpu."""
        history = MetricsHistory()

        history.record("abc", StatsPayload.model_validate(stats_body()))
        second = history.record(
            "abc",
            StatsPayload.model_validate(stats_body(total=300_000_000, system=3_000_000_000)),
        )

        # Delta 100M / 1000M against the first poll, 2 cpus
        assert second.cpu_percent == 20.0

        same = history.record(
            "abc",
            StatsPayload.model_validate(stats_body(total=300_000_000, system=3_000_000_000)),
        )
        assert same.cpu_percent == 0.0

    def test_trend(self, stats_body):
        history = MetricsHistory()
        for usage in (100, 200, 300):
            history.record("abc", StatsPayload.model_validate(stats_body(usage=usage)))

        assert history.trend("abc", "memory_usage") == Trend.INCREASING
        assert history.trend("missing") == Trend.STABLE

    def test_prune(self, stats_body):
        history = MetricsHistory()
        history.record("keep", StatsPayload.model_validate(stats_body()))
        history.record("gone", StatsPayload.model_validate(stats_body()))

        history.prune(["keep"])

        assert history.container_ids() == ["keep"]
        assert history.latest("gone") is None
