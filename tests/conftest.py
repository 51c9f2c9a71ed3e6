"""
Pytest configuration and fixtures for DockWatch tests.
"""

import re
import struct
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from dockwatch.telemetry.schemas import Endpoint

CONTAINER_PATH = re.compile(r"^/containers/([^/]+)/(json|stats|logs|restart)$")


def make_stats(
    total: int = 200_000_000,
    system: int = 2_000_000_000,
    pre_total: int = 100_000_000,
    pre_system: int = 1_000_000_000,
    online_cpus: Optional[int] = 2,
    usage: int = 268435456,
    limit: int = 536870912,
) -> dict:
    """Stats body shaped like GET /containers/{id}/stats?stream=false."""
    cpu_stats = {"cpu_usage": {"total_usage": total}, "system_cpu_usage": system}
    if online_cpus is not None:
        cpu_stats["online_cpus"] = online_cpus
    return {
        "read": "2025-01-01T12:00:00.123456789Z",
        "cpu_stats": cpu_stats,
        "precpu_stats": {
            "cpu_usage": {"total_usage": pre_total},
            "system_cpu_usage": pre_system,
        },
        "memory_stats": {"usage": usage, "limit": limit},
        "networks": {
            "eth0": {"rx_bytes": 1024, "tx_bytes": 2048},
            "eth1": {"rx_bytes": 512, "tx_bytes": 256},
        },
        "blkio_stats": {
            "io_service_bytes_recursive": [
                {"major": 8, "minor": 0, "op": "Read", "value": 4096},
                {"major": 8, "minor": 0, "op": "Write", "value": 8192},
                {"major": 8, "minor": 0, "op": "Total", "value": 12288},
            ]
        },
    }


class FakeEngine:
    """
    In-memory Docker Engine API served through httpx.MockTransport.

    Tests mutate containers/stats/inspect/logs between polls. Setting
    `down` makes every request fail at the connection level; setting
    `down_after_list` takes the engine down once it has served a full listing.
    """

    def __init__(self):
        self.containers: List[dict] = []
        self.stats: Dict[str, dict] = {}
        self.inspect: Dict[str, dict] = {}
        self.logs: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []
        self.down = False
        self.down_after_list = False

    def add_container(
        self,
        container_id: str,
        name: str,
        state: str = "running",
        status: str = "Up 5 minutes",
        restart_count: int = 0,
    ) -> None:
        self.containers.append(
            {
                "Id": container_id,
                "Names": [f"/{name}"],
                "Image": "nginx:latest",
                "State": state,
                "Status": status,
                "Created": 1735732800,
            }
        )
        self.stats[container_id] = make_stats()
        self.inspect[container_id] = {
            "Id": container_id,
            "Name": f"/{name}",
            "RestartCount": restart_count,
            "State": {"Status": state, "Running": state == "running", "ExitCode": 0},
            "Config": {"Image": "nginx:latest"},
        }

    def paths(self, method: str = "GET") -> List[str]:
        return [r.url.path for r in self.requests if r.method == method]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        if path == "/version":
            return httpx.Response(200, json={"Version": "24.0.7", "ApiVersion": "1.43"})
        if path == "/containers/json":
            if self.down_after_list and request.url.params.get("all") == "1":
                self.down = True
            return httpx.Response(200, json=self.containers)

        match = CONTAINER_PATH.match(path)
        if not match:
            return httpx.Response(404, json={"message": "page not found"})

        container_id, action = match.groups()
        if action == "restart":
            return httpx.Response(204)

        table = {"json": self.inspect, "stats": self.stats, "logs": self.logs}[action]
        if container_id not in table:
            return httpx.Response(404, json={"message": f"No such container: {container_id}"})
        if action == "logs":
            return httpx.Response(200, content=self.logs[container_id])
        return httpx.Response(200, json=table[container_id])

    def client_factory(self, endpoint: Endpoint) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=endpoint.base_url, transport=httpx.MockTransport(self.handler)
        )


def factory_for(handlers: Dict[str, Callable]) -> Callable[[Endpoint], httpx.AsyncClient]:
    """Client factory routing each endpoint address to its own handler."""

    def factory(endpoint: Endpoint) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=endpoint.base_url,
            transport=httpx.MockTransport(handlers[endpoint.address]),
        )

    return factory


def healthy_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/version":
        return httpx.Response(200, json={"Version": "24.0.7", "ApiVersion": "1.43"})
    return httpx.Response(200, json=[])


def refused_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def fake_engine():
    """Fake engine with no containers."""
    return FakeEngine()


@pytest.fixture
def frame():
    """Build one multiplexed log frame."""

    def build(payload: str, stream: int = 1) -> bytes:
        data = payload.encode("utf-8")
        return struct.pack(">BxxxI", stream, len(data)) + data

    return build


@pytest.fixture
def stats_body():
    """Build a stats body; see make_stats for the knobs."""
    return make_stats


@pytest.fixture
def route_clients():
    """Build a client factory from an address -> handler mapping."""
    return factory_for


@pytest.fixture
def healthy():
    return healthy_handler


@pytest.fixture
def refused():
    return refused_handler
