"""
DockWatch telemetry engine.

Discovers a working transport to the Docker Engine API, decodes container
stats and log streams, and turns container state changes into alerts.

Components (leaves first):
- TransportResolver: probes candidate endpoints and caches the winner
- RequestGateway: issues calls with bounded retries on transport failure
- stats: derives CPU/memory/network/disk metrics from cumulative counters
- logs: demultiplexes the framed stdout/stderr log stream
- HealthMonitor: per-container state machine raising alerts

Usage:
    from dockwatch.telemetry.service import ContainerMonitorService

    service = ContainerMonitorService(config)
    result = await service.poll_once()
"""

from dockwatch.telemetry.errors import (
    DockerEngineError,
    EngineAPIError,
    EngineProtocolError,
    EngineTransportError,
    NoEndpointAvailable,
)
from dockwatch.telemetry.gateway import RequestGateway
from dockwatch.telemetry.health_monitor import HealthMonitor
from dockwatch.telemetry.logs import decode_stream, search_stream
from dockwatch.telemetry.schemas import (
    Alert,
    ContainerSnapshot,
    ContainerState,
    Endpoint,
    EndpointKind,
    LogLevel,
    LogRecord,
    MetricSample,
    PollResult,
)
from dockwatch.telemetry.stats import MetricsHistory, decode, format_bytes
from dockwatch.telemetry.transport import TransportResolver

__all__ = [
    # Errors
    "DockerEngineError",
    "EngineAPIError",
    "EngineProtocolError",
    "EngineTransportError",
    "NoEndpointAvailable",
    # Connectivity
    "TransportResolver",
    "RequestGateway",
    # Decoding
    "decode",
    "decode_stream",
    "search_stream",
    "format_bytes",
    "MetricsHistory",
    # State
    "HealthMonitor",
    # Schemas
    "Alert",
    "ContainerSnapshot",
    "ContainerState",
    "Endpoint",
    "EndpointKind",
    "LogLevel",
    "LogRecord",
    "MetricSample",
    "PollResult",
]
