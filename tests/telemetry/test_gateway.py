"""
Unit tests for the request gateway.

Tests retry on connection failures, error propagation and JSON decoding.
"""

import httpx
import pytest

from dockwatch.telemetry.errors import (
    EngineAPIError,
    EngineProtocolError,
    EngineTransportError,
    NoEndpointAvailable,
)
from dockwatch.telemetry.gateway import RequestGateway
from dockwatch.telemetry.schemas import Endpoint
from dockwatch.telemetry.transport import TransportResolver

ENDPOINT = Endpoint.from_url("tcp://localhost:2375")


class FlakyEngine:
    """Healthy for probes; /info fails `failures` times before answering."""

    def __init__(self, failures: int = 0, info_response: httpx.Response = None):
        self.failures = failures
        self.info_response = info_response or httpx.Response(200, json={"Containers": 3})
        self.info_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/version":
            return httpx.Response(200, json={"Version": "24.0.7", "ApiVersion": "1.43"})
        if request.url.path == "/containers/json":
            return httpx.Response(200, json=[])

        self.info_calls += 1
        if self.info_calls <= self.failures:
            raise httpx.ConnectError("Connection reset by peer", request=request)
        return self.info_response


def make_gateway(route_clients, engine: FlakyEngine, max_attempts: int = 3) -> RequestGateway:
    resolver = TransportResolver(
        [ENDPOINT],
        retry_delay=0,
        client_factory=route_clients({ENDPOINT.address: engine.handler}),
    )
    return RequestGateway(resolver, max_attempts=max_attempts)


class TestRequestGateway:
    """Test RequestGateway functionality."""

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RequestGateway(TransportResolver([ENDPOINT]), max_attempts=0)

    @pytest.mark.asyncio
    async def test_resolves_on_first_call(self, route_clients):
        engine = FlakyEngine()
        gateway = make_gateway(route_clients, engine)
        assert gateway.resolver.active is None

        data = await gateway.get_json("/info")

        assert data == {"Containers": 3}
        assert gateway.resolver.active == ENDPOINT
        await gateway.resolver.aclose()

    @pytest.mark.asyncio
    async def test_recovers_within_budget(self, route_clients):
        """Test two connection failures then success with a budget of three."""
        engine = FlakyEngine(failures=2)
        gateway = make_gateway(route_clients, engine)

        data = await gateway.get_json("/info")

        assert data == {"Containers": 3}
        assert engine.info_calls == 3
        # Each failure invalidates, so discovery ran once per attempt
        assert gateway.resolver.resolution_count == 3
        assert gateway.get_stats()["transport_failures"] == 2
        await gateway.resolver.aclose()

    @pytest.mark.asyncio
    async def test_exhaustion_preserves_original_error(self, route_clients):
        engine = FlakyEngine(failures=10)
        gateway = make_gateway(route_clients, engine)

        with pytest.raises(EngineTransportError) as exc_info:
            await gateway.get_json("/info")

        error = exc_info.value
        assert error.attempts == 3
        assert error.path == "/info"
        assert isinstance(error.original, httpx.ConnectError)
        assert error.__cause__ is error.original
        assert engine.info_calls == 3
        await gateway.resolver.aclose()

    @pytest.mark.asyncio
    async def test_failed_rediscovery_keeps_connection_error(self, fake_engine):
        """Test the engine dying mid-session chains the refusal to the discovery failure."""
        resolver = TransportResolver(
            [ENDPOINT], retry_delay=0, client_factory=fake_engine.client_factory
        )
        gateway = RequestGateway(resolver)
        await resolver.resolve()
        fake_engine.down = True

        with pytest.raises(NoEndpointAvailable) as exc_info:
            await gateway.get_json("/info")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert gateway.get_stats()["transport_failures"] == 1
        await resolver.aclose()

    @pytest.mark.asyncio
    async def test_api_error_not_retried(self, route_clients):
        """Test a non-2xx answer raises immediately and keeps the transport."""
        engine = FlakyEngine(
            info_response=httpx.Response(404, json={"message": "No such container: x"})
        )
        gateway = make_gateway(route_clients, engine)

        with pytest.raises(EngineAPIError) as exc_info:
            await gateway.get_json("/info")

        assert exc_info.value.status_code == 404
        assert "No such container" in exc_info.value.body
        assert engine.info_calls == 1
        assert gateway.resolver.active == ENDPOINT
        await gateway.resolver.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json_raises_protocol_error(self, route_clients):
        engine = FlakyEngine(info_response=httpx.Response(200, content=b"not json"))
        gateway = make_gateway(route_clients, engine)

        with pytest.raises(EngineProtocolError) as exc_info:
            await gateway.get_json("/info")

        assert exc_info.value.path == "/info"
        await gateway.resolver.aclose()

    @pytest.mark.asyncio
    async def test_get_bytes_returns_raw_body(self, route_clients):
        engine = FlakyEngine(info_response=httpx.Response(200, content=b"\x01\x00\x00\x00raw"))
        gateway = make_gateway(route_clients, engine)

        assert await gateway.get_bytes("/info") == b"\x01\x00\x00\x00raw"
        await gateway.resolver.aclose()

    @pytest.mark.asyncio
    async def test_sends_accept_header(self, fake_engine):
        resolver = TransportResolver([ENDPOINT], client_factory=fake_engine.client_factory)
        gateway = RequestGateway(resolver)

        await gateway.get_json("/containers/json", params={"all": 1})

        request = fake_engine.requests[-1]
        assert request.headers["Accept"] == "application/json"
        assert request.url.params["all"] == "1"
        await resolver.aclose()
