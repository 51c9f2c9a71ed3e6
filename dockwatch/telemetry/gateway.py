"""
Request gateway for the Docker Engine API.

All engine calls go through RequestGateway.call(). It resolves a transport on
demand, applies default headers and timeouts, and on connection-level failures
invalidates the transport and retries against a freshly resolved one.
"""

import logging
from typing import Any, Mapping, Optional

import httpx

from dockwatch.telemetry.errors import (
    EngineAPIError,
    EngineProtocolError,
    EngineTransportError,
    NoEndpointAvailable,
)
from dockwatch.telemetry.transport import DEFAULT_HEADERS, TransportResolver

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 5.0


class RequestGateway:
    """Issues engine API calls through the resolver's active transport."""

    def __init__(
        self,
        resolver: TransportResolver,
        max_attempts: int = 3,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        """
        Initialize gateway.

        Args:
            resolver: Resolver owning the active transport
            max_attempts: Attempts per call, counting the first one
            timeout: Default timeout for each attempt
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.resolver = resolver
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._request_count = 0
        self._transport_failures = 0

    async def call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Perform one engine API call.

        Args:
            method: HTTP method
            path: API path, e.g. "/containers/json"
            params: Query parameters
            timeout: Per-attempt timeout, defaults to the gateway timeout

        Returns:
            The successful response

        Raises:
            NoEndpointAvailable: If no transport could be resolved; chained to the
                connection error that invalidated the previous one, if any
            EngineTransportError: If every attempt failed at the connection level
            EngineAPIError: If the engine answered with a non-2xx status
        """
        last_error: Optional[Exception] = None
        self._request_count += 1

        for attempt in range(1, self.max_attempts + 1):
            endpoint = self.resolver.active
            if endpoint is None:
                try:
                    endpoint = await self.resolver.resolve()
                except NoEndpointAvailable as e:
                    if last_error is None:
                        raise
                    raise e from last_error

            client = self.resolver.client_for(endpoint)
            try:
                response = await client.request(
                    method,
                    path,
                    params=params,
                    headers=DEFAULT_HEADERS,
                    timeout=timeout if timeout is not None else self.timeout,
                )
            except httpx.TransportError as e:
                last_error = e
                self._transport_failures += 1
                self.resolver.invalidate(f"{type(e).__name__} on {method} {path}")
                logger.warning(
                    f"{method} {path} via {endpoint.label} failed "
                    f"(attempt {attempt}/{self.max_attempts}): {type(e).__name__}: {e}"
                )
                continue

            if not response.is_success:
                body = response.text
                logger.debug(f"{method} {path} returned HTTP {response.status_code}: {body[:200]}")
                raise EngineAPIError(response.status_code, path, body)

            return response

        assert last_error is not None
        raise EngineTransportError(path, self.max_attempts, last_error) from last_error

    async def get_json(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        GET a path and decode its JSON body.

        Raises:
            EngineProtocolError: If the body is not valid JSON
        """
        response = await self.call("GET", path, params=params, timeout=timeout)
        try:
            return response.json()
        except ValueError as e:
            raise EngineProtocolError(path, f"invalid JSON: {e}") from e

    async def get_bytes(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> bytes:
        """GET a path and return the raw body."""
        response = await self.call("GET", path, params=params, timeout=timeout)
        return response.content

    def get_stats(self) -> dict:
        return {
            "requests": self._request_count,
            "transport_failures": self._transport_failures,
            "max_attempts": self.max_attempts,
        }
