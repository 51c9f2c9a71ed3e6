"""
Type-safe schemas for the Docker telemetry engine.

Two groups live here:

- Engine schemas mirror the JSON bodies of the Docker Engine API endpoints we
  consume. Fields the engine may omit carry defaults so a partial body parses
  instead of failing halfway through a poll.
- Domain schemas are what the rest of DockWatch passes around: endpoints,
  container snapshots, metric samples, log records and alerts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


def parse_engine_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC3339Nano timestamp as produced by the engine.

    Python datetimes only hold microseconds, so extra fractional digits are
    truncated. The zero value "0001-01-01T00:00:00Z" means "never" and maps to None.
    """
    if not value or value.startswith("0001-01-01"):
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        for char in rest:
            if not char.isdigit():
                break
            digits += char
        zone = rest[len(digits) :]
        text = f"{head}.{digits[:6].ljust(6, '0')}{zone}"

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


# ============================================================================
# ENUMS
# ============================================================================


class EndpointKind(str, Enum):
    """How an endpoint is reached."""

    UNIX_SOCKET = "unix-socket"
    TCP = "tcp"


class ContainerState(str, Enum):
    """Container lifecycle states, plus the monitor's own unknown/removed."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    EXITED = "exited"
    DEAD = "dead"
    REMOVING = "removing"
    UNKNOWN = "unknown"
    REMOVED = "removed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ContainerState":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


class LogLevel(str, Enum):
    """Severity inferred from log message text."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class LogStream(str, Enum):
    """Source stream of a log frame."""

    STDIN = "stdin"
    STDOUT = "stdout"
    STDERR = "stderr"
    UNKNOWN = "unknown"


class Trend(str, Enum):
    """Direction of a metric over its recent samples."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# ============================================================================
# ENDPOINTS
# ============================================================================


class Endpoint(BaseModel):
    """One candidate address for reaching the engine API."""

    model_config = ConfigDict(frozen=True)

    kind: EndpointKind
    address: str = Field(min_length=1)
    priority: int = Field(default=0, ge=0)

    @classmethod
    def from_url(cls, url: str, priority: int = 0) -> "Endpoint":
        """
        Build an endpoint from a URL.

        Accepts unix:///path/to.sock, tcp://host:port and http://host:port.
        """
        parsed = urlparse(url)
        if parsed.scheme == "unix":
            path = parsed.path or parsed.netloc
            if not path:
                raise ValueError(f"Unix socket URL has no path: {url}")
            return cls(kind=EndpointKind.UNIX_SOCKET, address=path, priority=priority)
        if parsed.scheme in ("tcp", "http"):
            if not parsed.netloc:
                raise ValueError(f"TCP endpoint URL has no host: {url}")
            return cls(kind=EndpointKind.TCP, address=parsed.netloc, priority=priority)
        raise ValueError(f"Unsupported engine URL scheme '{parsed.scheme}' in {url}")

    @property
    def base_url(self) -> str:
        """Base URL for HTTP requests. Socket requests still need a host header."""
        if self.kind == EndpointKind.UNIX_SOCKET:
            return "http://docker"
        return f"http://{self.address}"

    @property
    def label(self) -> str:
        return f"{self.kind.value}:{self.address}"


DEFAULT_ENDPOINTS: List[Endpoint] = [
    Endpoint(kind=EndpointKind.UNIX_SOCKET, address="/var/run/docker.sock", priority=0),
    Endpoint(kind=EndpointKind.TCP, address="localhost:2375", priority=1),
    Endpoint(kind=EndpointKind.TCP, address="127.0.0.1:2375", priority=2),
]


# ============================================================================
# ENGINE SCHEMAS - bodies returned by the Docker Engine API
# ============================================================================


class _EngineModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class VersionInfo(_EngineModel):
    """GET /version"""

    version: str = Field(alias="Version")
    api_version: str = Field(alias="ApiVersion")
    os: Optional[str] = Field(default=None, alias="Os")
    arch: Optional[str] = Field(default=None, alias="Arch")


class ContainerSummary(_EngineModel):
    """One entry of GET /containers/json"""

    id: str = Field(alias="Id", min_length=1)
    names: List[str] = Field(default_factory=list, alias="Names")
    image: str = Field(default="", alias="Image")
    state: str = Field(default="", alias="State")
    status: str = Field(default="", alias="Status")
    created: Optional[int] = Field(default=None, alias="Created")


class HealthState(_EngineModel):
    status: str = Field(default="", alias="Status")
    failing_streak: int = Field(default=0, alias="FailingStreak")


class InspectState(_EngineModel):
    status: str = Field(default="", alias="Status")
    running: bool = Field(default=False, alias="Running")
    exit_code: Optional[int] = Field(default=None, alias="ExitCode")
    error: Optional[str] = Field(default=None, alias="Error")
    started_at: Optional[str] = Field(default=None, alias="StartedAt")
    finished_at: Optional[str] = Field(default=None, alias="FinishedAt")
    health: Optional[HealthState] = Field(default=None, alias="Health")


class InspectConfig(_EngineModel):
    image: str = Field(default="", alias="Image")


class ContainerInspect(_EngineModel):
    """GET /containers/{id}/json"""

    id: str = Field(alias="Id", min_length=1)
    name: str = Field(default="", alias="Name")
    created: Optional[str] = Field(default=None, alias="Created")
    restart_count: int = Field(default=0, alias="RestartCount")
    state: InspectState = Field(default_factory=InspectState, alias="State")
    config: InspectConfig = Field(default_factory=InspectConfig, alias="Config")

    @property
    def display_name(self) -> str:
        return self.name.lstrip("/") or self.id[:12]


class CpuUsage(BaseModel):
    total_usage: int = 0
    percpu_usage: Optional[List[int]] = None


class CpuStats(BaseModel):
    cpu_usage: CpuUsage = Field(default_factory=CpuUsage)
    system_cpu_usage: int = 0
    online_cpus: Optional[int] = None


class MemoryStats(BaseModel):
    usage: int = 0
    limit: int = 0


class NetworkStats(BaseModel):
    rx_bytes: int = 0
    tx_bytes: int = 0


class BlkioEntry(BaseModel):
    op: str = ""
    value: int = 0


class BlkioStats(BaseModel):
    io_service_bytes_recursive: Optional[List[BlkioEntry]] = None


class StatsPayload(BaseModel):
    """GET /containers/{id}/stats?stream=false"""

    model_config = ConfigDict(extra="ignore")

    read: Optional[str] = None
    cpu_stats: CpuStats = Field(default_factory=CpuStats)
    precpu_stats: CpuStats = Field(default_factory=CpuStats)
    memory_stats: MemoryStats = Field(default_factory=MemoryStats)
    networks: Optional[Dict[str, NetworkStats]] = None
    blkio_stats: BlkioStats = Field(default_factory=BlkioStats)


# ============================================================================
# DOMAIN SCHEMAS
# ============================================================================


class StatsCounters(BaseModel):
    """Cumulative counters from one stats reading."""

    cpu_total: int = 0
    system_cpu: int = 0
    online_cpus: int = Field(default=1, ge=1)
    memory_usage: int = 0
    memory_limit: int = 0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    disk_read_bytes: int = 0
    disk_write_bytes: int = 0
    read_at: Optional[datetime] = None


class ContainerSnapshot(BaseModel):
    """One poll cycle's view of a container."""

    model_config = ConfigDict(extra="forbid")

    container_id: str = Field(min_length=1)
    name: str
    state: ContainerState
    status: str = ""
    restart_count: int = Field(default=0, ge=0)

    @classmethod
    def from_summary(
        cls, summary: ContainerSummary, restart_count: int = 0
    ) -> "ContainerSnapshot":
        name = summary.names[0].lstrip("/") if summary.names else summary.id[:12]
        return cls(
            container_id=summary.id,
            name=name,
            state=ContainerState.parse(summary.state),
            status=summary.status,
            restart_count=restart_count,
        )

    @property
    def short_id(self) -> str:
        return self.container_id[:12]


class MetricSample(BaseModel):
    """Derived resource metrics for one container at one instant."""

    model_config = ConfigDict(extra="forbid")

    cpu_percent: float = Field(ge=0, description="Can exceed 100% on multi-core hosts")
    memory_usage: int = Field(ge=0)
    memory_limit: int = Field(ge=0)
    memory_percent: float = Field(ge=0)
    network_rx_bytes: int = Field(ge=0)
    network_tx_bytes: int = Field(ge=0)
    disk_read_bytes: int = Field(ge=0)
    disk_write_bytes: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LogRecord(BaseModel):
    """A single decoded log line."""

    message: str
    level: LogLevel
    timestamp: Optional[datetime] = None
    stream: LogStream = LogStream.UNKNOWN


class Alert(BaseModel):
    """An operator-facing alert."""

    message: str = Field(min_length=1)
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    container_id: Optional[str] = None

    def to_record(self) -> Dict[str, str]:
        """Serialize as stored in the alert log."""
        return {"message": self.message, "time": self.time.isoformat()}


class ResourceTotals(BaseModel):
    """Aggregate resource usage across containers in one poll."""

    cpu_percent: float = 0.0
    memory_usage: int = 0
    containers_sampled: int = 0


class PollResult(BaseModel):
    """Everything produced by one poll cycle."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    connected: bool
    endpoint: Optional[str] = None
    containers: List[ContainerSnapshot] = Field(default_factory=list)
    samples: Dict[str, Optional[MetricSample]] = Field(default_factory=dict)
    alerts: List[Alert] = Field(default_factory=list)
    totals: ResourceTotals = Field(default_factory=ResourceTotals)
    error: Optional[str] = None


class ContainerDetails(BaseModel):
    """Detail view for the selected container."""

    inspect: ContainerInspect
    logs: List[LogRecord] = Field(default_factory=list)
    sample: Optional[MetricSample] = None
