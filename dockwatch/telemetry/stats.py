"""
Container stats decoding.

Turns the engine's cumulative counters into point-in-time metrics. CPU is
derived from the delta between two readings; memory, network and disk are
read from the current reading.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from dockwatch.telemetry.schemas import (
    CpuStats,
    MetricSample,
    StatsCounters,
    StatsPayload,
    Trend,
    parse_engine_timestamp,
)

logger = logging.getLogger(__name__)

BYTE_UNITS = ["B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]

HISTORY_SIZE = 20
TREND_WINDOW = 5
TREND_THRESHOLD_PERCENT = 5.0


def format_bytes(num_bytes: float, decimals: int = 2) -> str:
    """
    Format a byte count with base-1024 units.

    The unit is floor(log_1024(bytes)), clamped to the top of the ladder.

    Examples:
        format_bytes(0) -> "0 B"
        format_bytes(1536) -> "1.5 KB"
        format_bytes(1073741824) -> "1.0 GB"
    """
    if num_bytes <= 0:
        return "0 B"

    # Integer comparison instead of math.log, which misplaces exact powers of 1024
    index = 0
    while index < len(BYTE_UNITS) - 1 and num_bytes >= 1024 ** (index + 1):
        index += 1

    value = round(num_bytes / 1024**index, max(decimals, 0))
    return f"{value} {BYTE_UNITS[index]}"


def _cpu_count(cpu_stats: CpuStats) -> int:
    if cpu_stats.online_cpus:
        return cpu_stats.online_cpus
    if cpu_stats.cpu_usage.percpu_usage:
        return len(cpu_stats.cpu_usage.percpu_usage)
    return 1


def counters_from_payload(payload: StatsPayload, previous: bool = False) -> StatsCounters:
    """
    Extract counters from a stats body.

    Args:
        payload: Parsed stats body
        previous: Use precpu_stats for CPU (the engine's own previous reading)

    Returns:
        Counters; absent fields are zero
    """
    cpu = payload.precpu_stats if previous else payload.cpu_stats
    networks = payload.networks or {}
    blkio = payload.blkio_stats.io_service_bytes_recursive or []

    return StatsCounters(
        cpu_total=cpu.cpu_usage.total_usage,
        system_cpu=cpu.system_cpu_usage,
        online_cpus=_cpu_count(cpu),
        memory_usage=payload.memory_stats.usage,
        memory_limit=payload.memory_stats.limit,
        network_rx_bytes=sum(net.rx_bytes for net in networks.values()),
        network_tx_bytes=sum(net.tx_bytes for net in networks.values()),
        disk_read_bytes=sum(e.value for e in blkio if e.op.lower() == "read"),
        disk_write_bytes=sum(e.value for e in blkio if e.op.lower() == "write"),
        read_at=parse_engine_timestamp(payload.read),
    )


def cpu_percent(previous: StatsCounters, current: StatsCounters) -> float:
    """CPU usage between two readings; 0 when either delta is not positive."""
    cpu_delta = current.cpu_total - previous.cpu_total
    system_delta = current.system_cpu - previous.system_cpu
    if cpu_delta <= 0 or system_delta <= 0:
        return 0.0
    return cpu_delta / system_delta * current.online_cpus * 100.0


def decode(previous: StatsCounters, current: StatsCounters) -> MetricSample:
    """
    Compute a metric sample from two consecutive readings.

    Pure; the caller keeps the previous reading.
    """
    memory_percent = (
        current.memory_usage / current.memory_limit * 100.0 if current.memory_limit > 0 else 0.0
    )

    sample = MetricSample(
        cpu_percent=round(cpu_percent(previous, current), 2),
        memory_usage=max(current.memory_usage, 0),
        memory_limit=max(current.memory_limit, 0),
        memory_percent=round(memory_percent, 2),
        network_rx_bytes=current.network_rx_bytes,
        network_tx_bytes=current.network_tx_bytes,
        disk_read_bytes=current.disk_read_bytes,
        disk_write_bytes=current.disk_write_bytes,
    )
    if current.read_at is not None:
        sample.timestamp = current.read_at
    return sample


def decode_payload(payload: StatsPayload) -> MetricSample:
    """Decode a one-shot stats body using its embedded previous reading."""
    return decode(counters_from_payload(payload, previous=True), counters_from_payload(payload))


def format_sample(sample: MetricSample) -> Dict[str, str]:
    """Human-readable values for display."""
    return {
        "cpu": f"{sample.cpu_percent:.2f}%",
        "memory": f"{format_bytes(sample.memory_usage)} / {format_bytes(sample.memory_limit)}",
        "memory_percent": f"{sample.memory_percent:.2f}%",
        "network_rx": format_bytes(sample.network_rx_bytes),
        "network_tx": format_bytes(sample.network_tx_bytes),
        "disk_read": format_bytes(sample.disk_read_bytes),
        "disk_write": format_bytes(sample.disk_write_bytes),
    }


def classify_trend(
    values: List[float],
    window: int = TREND_WINDOW,
    threshold: float = TREND_THRESHOLD_PERCENT,
) -> Trend:
    """
    Classify the direction of the last `window` values.

    Compares first and last value of the window as a percentage change.
    """
    if len(values) < 2:
        return Trend.STABLE

    samples = values[-min(window, len(values)) :]
    first, last = samples[0], samples[-1]
    change = (last - first) / abs(first or 1) * 100.0

    if change > threshold:
        return Trend.INCREASING
    if change < -threshold:
        return Trend.DECREASING
    return Trend.STABLE


class MetricsHistory:
    """
    Bounded per-container sample history.

    Keeps the previous counters for each container so that consecutive polls
    can be decoded against each other.
    """

    def __init__(self, size: int = HISTORY_SIZE):
        self.size = size
        self._samples: Dict[str, Deque[MetricSample]] = {}
        self._previous: Dict[str, StatsCounters] = {}

    def record(self, container_id: str, payload: StatsPayload) -> MetricSample:
        """
        Decode a stats body and append the sample.

        The previous poll's counters are used when available, otherwise the
        engine's precpu reading.
        """
        current = counters_from_payload(payload)
        previous = self._previous.get(container_id) or counters_from_payload(payload, previous=True)

        sample = decode(previous, current)
        self._previous[container_id] = current
        self._samples.setdefault(container_id, deque(maxlen=self.size)).append(sample)
        return sample

    def samples(self, container_id: str) -> List[MetricSample]:
        return list(self._samples.get(container_id, ()))

    def latest(self, container_id: str) -> Optional[MetricSample]:
        samples = self._samples.get(container_id)
        return samples[-1] if samples else None

    def trend(self, container_id: str, field: str = "cpu_percent") -> Trend:
        """Trend of one MetricSample field for a container."""
        return classify_trend([float(getattr(s, field)) for s in self.samples(container_id)])

    def forget(self, container_id: str) -> None:
        self._samples.pop(container_id, None)
        self._previous.pop(container_id, None)

    def prune(self, live_ids: List[str]) -> None:
        """Drop history for containers no longer present."""
        for container_id in set(self._samples) | set(self._previous):
            if container_id not in live_ids:
                self.forget(container_id)

    def container_ids(self) -> List[str]:
        return list(self._samples)
