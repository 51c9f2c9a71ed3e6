"""
Transport discovery for the Docker Engine API.

The resolver walks an ordered list of candidate endpoints (local socket first,
then loopback TCP variants) and caches the first one that passes both a
version probe and a container-list probe. Callers invalidate the cached
endpoint when a request fails at the connection level.
"""

import asyncio
import logging
import sys
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from dockwatch.telemetry.errors import NoEndpointAvailable
from dockwatch.telemetry.schemas import Endpoint, EndpointKind, VersionInfo

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Accept": "application/json"}

# Short timeout for health probes; data calls use the gateway timeout
PROBE_TIMEOUT_SECONDS = 2.0

ClientFactory = Callable[[Endpoint], httpx.AsyncClient]


def default_client_factory(endpoint: Endpoint) -> httpx.AsyncClient:
    """Create an HTTP client bound to an endpoint."""
    if endpoint.kind == EndpointKind.UNIX_SOCKET:
        transport = httpx.AsyncHTTPTransport(uds=endpoint.address)
    else:
        transport = httpx.AsyncHTTPTransport()

    return httpx.AsyncClient(
        base_url=endpoint.base_url,
        transport=transport,
        headers=DEFAULT_HEADERS,
        timeout=PROBE_TIMEOUT_SECONDS,
    )


def is_unix_platform(platform: Optional[str] = None) -> bool:
    """Unix sockets are unavailable on Windows."""
    return not (platform or sys.platform).startswith("win")


def order_endpoints(
    endpoints: Iterable[Endpoint], platform: Optional[str] = None
) -> List[Endpoint]:
    """
    Sort candidates by priority and drop those the platform cannot reach.

    The sort is stable, so endpoints sharing a priority keep their list order.
    """
    unix = is_unix_platform(platform)
    ordered = []
    for endpoint in sorted(endpoints, key=lambda e: e.priority):
        if endpoint.kind == EndpointKind.UNIX_SOCKET and not unix:
            logger.debug(f"Skipping {endpoint.label}: unix sockets unsupported on this platform")
            continue
        if endpoint not in ordered:
            ordered.append(endpoint)
    return ordered


class TransportResolver:
    """
    Discovers and caches a working endpoint.

    Owns the active transport and the discovery retry counter. One HTTP client
    is kept per endpoint and reused across probes and requests.
    """

    def __init__(
        self,
        endpoints: Iterable[Endpoint],
        max_retries: int = 3,
        retry_delay: float = 1.0,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        client_factory: Optional[ClientFactory] = None,
        platform: Optional[str] = None,
    ):
        """
        Initialize resolver.

        Args:
            endpoints: Candidate endpoints, probed in priority order
            max_retries: Failed discovery passes allowed before giving up
            retry_delay: Seconds to wait between discovery passes
            probe_timeout: Timeout for each probe request
            client_factory: Builds the HTTP client for an endpoint
            platform: Platform string used for filtering (defaults to sys.platform)
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.platform = platform
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.probe_timeout = probe_timeout
        self._client_factory = client_factory or default_client_factory
        self._endpoints = order_endpoints(endpoints, platform)
        self._clients: Dict[Endpoint, httpx.AsyncClient] = {}
        self._active: Optional[Endpoint] = None
        self.retry_count = 0
        self._resolution_count = 0
        self._last_error: Optional[str] = None
        self._cycle = 0
        self._exhausted: Optional[NoEndpointAvailable] = None
        self._lock = asyncio.Lock()

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints)

    @property
    def active(self) -> Optional[Endpoint]:
        """The currently trusted endpoint, or None."""
        return self._active

    @property
    def resolution_count(self) -> int:
        """Discovery passes run since construction."""
        return self._resolution_count

    def client_for(self, endpoint: Endpoint) -> httpx.AsyncClient:
        """Return the cached client for an endpoint, creating it on first use."""
        if endpoint not in self._clients:
            self._clients[endpoint] = self._client_factory(endpoint)
        return self._clients[endpoint]

    async def probe(self, endpoint: Endpoint) -> bool:
        """
        Check that an endpoint can serve real requests.

        Both the version query and a one-item container listing must succeed;
        some proxies answer /version while refusing everything else.

        Returns:
            True if both probes succeeded, False otherwise (never raises)
        """
        client = self.client_for(endpoint)
        try:
            response = await client.get("/version", timeout=self.probe_timeout)
            if not response.is_success:
                logger.debug(
                    f"{endpoint.label}: version probe returned HTTP {response.status_code}"
                )
                return False
            version = VersionInfo.model_validate(response.json())

            response = await client.get(
                "/containers/json", params={"limit": 1}, timeout=self.probe_timeout
            )
            if not response.is_success:
                logger.debug(f"{endpoint.label}: list probe returned HTTP {response.status_code}")
                return False
            if not isinstance(response.json(), list):
                logger.debug(f"{endpoint.label}: list probe did not return a list")
                return False

        except (httpx.HTTPError, ValueError) as e:
            self._last_error = f"{endpoint.label}: {type(e).__name__}: {e}"
            logger.debug(f"Probe failed for {self._last_error}")
            return False

        logger.debug(f"{endpoint.label}: Docker {version.version} (API {version.api_version})")
        return True

    async def resolve(self) -> Endpoint:
        """
        Find a working endpoint and cache it.

        Each pass probes every candidate in order and stops at the first one
        that passes. Failed passes are retried after retry_delay until
        max_retries passes have failed. Calling resolve() again afterwards
        starts a fresh cycle.

        Concurrent callers share one discovery: whoever waits on the lock gets
        the outcome of the cycle that ran while it waited, the endpoint found
        or the exhaustion failure, without probing again.

        Returns:
            The selected endpoint

        Raises:
            NoEndpointAvailable: If every pass failed
        """
        cycle = self._cycle
        async with self._lock:
            if self._active is not None:
                return self._active
            if self._cycle != cycle and self._exhausted is not None:
                raise NoEndpointAvailable(self._exhausted.attempts, self._exhausted.tried)
            return await self._discover()

    async def _discover(self) -> Endpoint:
        if not self._endpoints:
            raise NoEndpointAvailable(0, [])

        if self.retry_count >= self.max_retries:
            logger.info("Starting fresh discovery cycle after previous exhaustion")
            self.retry_count = 0

        while True:
            self._resolution_count += 1
            for endpoint in self._endpoints:
                if await self.probe(endpoint):
                    self._active = endpoint
                    self._exhausted = None
                    self._cycle += 1
                    self.retry_count = 0
                    logger.info(
                        f"Docker engine reachable at {endpoint.label}",
                        extra={"endpoint": endpoint.label},
                    )
                    return endpoint

            self.retry_count += 1
            if self.retry_count >= self.max_retries:
                logger.error(
                    f"Docker engine discovery gave up after {self.retry_count} attempts"
                    + (f" (last error: {self._last_error})" if self._last_error else "")
                )
                self._exhausted = NoEndpointAvailable(
                    self.retry_count, [e.label for e in self._endpoints]
                )
                self._cycle += 1
                raise self._exhausted

            logger.warning(
                f"No Docker endpoint reachable (attempt {self.retry_count}/{self.max_retries}), "
                f"retrying in {self.retry_delay}s"
            )
            await asyncio.sleep(self.retry_delay)

    def invalidate(self, reason: Optional[str] = None) -> None:
        """Forget the active endpoint so the next request rediscovers."""
        if self._active is not None:
            logger.info(
                f"Invalidating transport {self._active.label}" + (f": {reason}" if reason else "")
            )
        self._active = None

    async def reconfigure(self, endpoints: Iterable[Endpoint]) -> None:
        """Replace the candidate list. Always invalidates the active endpoint."""
        new_endpoints = order_endpoints(endpoints, self.platform)
        for endpoint in list(self._clients):
            if endpoint not in new_endpoints:
                await self._clients.pop(endpoint).aclose()
        self._endpoints = new_endpoints
        self.retry_count = 0
        self._exhausted = None
        self.invalidate("endpoint configuration changed")

    async def aclose(self) -> None:
        """Close all HTTP clients."""
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
        self._active = None

    def get_stats(self) -> dict:
        """
        Get resolver statistics.

        Returns:
            Dictionary with discovery stats
        """
        return {
            "active": self._active.label if self._active else None,
            "candidates": [e.label for e in self._endpoints],
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "resolutions": self._resolution_count,
            "last_error": self._last_error,
        }
