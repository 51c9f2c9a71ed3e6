"""
Typed Docker Engine API client.

Thin wrappers over RequestGateway that parse each endpoint's body into its
schema. A body that does not match raises EngineProtocolError instead of
leaking a half-parsed dict into the monitor.
"""

import logging
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from dockwatch.telemetry.errors import EngineProtocolError
from dockwatch.telemetry.gateway import RequestGateway
from dockwatch.telemetry.logs import DEFAULT_TAIL, SEARCH_TAIL, decode_stream, search_stream
from dockwatch.telemetry.schemas import (
    ContainerInspect,
    ContainerSummary,
    LogRecord,
    StatsPayload,
    VersionInfo,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

STATS_TIMEOUT_SECONDS = 5.0
LOGS_TIMEOUT_SECONDS = 5.0
RESTART_TIMEOUT_SECONDS = 30.0


def _parse(model: Type[M], data: Any, path: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        reason = f"{model.__name__}: {e.error_count()} validation errors"
        raise EngineProtocolError(path, reason) from e


class DockerEngineClient:
    """Engine API operations used by the monitor."""

    def __init__(self, gateway: RequestGateway):
        self.gateway = gateway

    async def version(self) -> VersionInfo:
        path = "/version"
        return _parse(VersionInfo, await self.gateway.get_json(path), path)

    async def list_containers(self, all: bool = True) -> List[ContainerSummary]:
        path = "/containers/json"
        data = await self.gateway.get_json(path, params={"all": 1 if all else 0})
        if not isinstance(data, list):
            raise EngineProtocolError(path, f"expected a list, got {type(data).__name__}")
        return [_parse(ContainerSummary, item, path) for item in data]

    async def inspect_container(self, container_id: str) -> ContainerInspect:
        path = f"/containers/{container_id}/json"
        return _parse(ContainerInspect, await self.gateway.get_json(path), path)

    async def container_stats(self, container_id: str) -> StatsPayload:
        path = f"/containers/{container_id}/stats"
        data = await self.gateway.get_json(
            path, params={"stream": "false"}, timeout=STATS_TIMEOUT_SECONDS
        )
        return _parse(StatsPayload, data, path)

    async def container_logs_raw(self, container_id: str, tail: int = DEFAULT_TAIL) -> bytes:
        """Raw multiplexed log body, newest `tail` lines."""
        return await self.gateway.get_bytes(
            f"/containers/{container_id}/logs",
            params={"stdout": 1, "stderr": 1, "timestamps": 1, "tail": tail},
            timeout=LOGS_TIMEOUT_SECONDS,
        )

    async def container_logs(self, container_id: str, tail: int = DEFAULT_TAIL) -> List[LogRecord]:
        return decode_stream(await self.container_logs_raw(container_id, tail))

    async def search_logs(
        self, container_id: str, term: str, tail: int = SEARCH_TAIL
    ) -> List[LogRecord]:
        """Log lines containing `term`, searched over a wider tail window."""
        return search_stream(await self.container_logs_raw(container_id, tail), term)

    async def restart_container(self, container_id: str) -> None:
        await self.gateway.call(
            "POST", f"/containers/{container_id}/restart", timeout=RESTART_TIMEOUT_SECONDS
        )
        logger.info(f"Restart requested for container {container_id[:12]}")
