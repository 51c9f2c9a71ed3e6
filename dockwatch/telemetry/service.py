"""
Container monitor service.

Owns the connectivity core (resolver, gateway, engine client) together with
the health monitor, metrics history and alert log, and runs the poll cycle
on a timer. Constructed once at startup; settings changes are applied in place.
"""

import asyncio
import logging
import signal
from typing import Dict, List, Optional, Tuple

import httpx

from dockwatch.config.settings import DockWatchConfig, UserSettings
from dockwatch.logging_config import LogContext
from dockwatch.telemetry.alerts import AlertDispatcher, AlertLog, Notifier
from dockwatch.telemetry.base import PeriodicPoller
from dockwatch.telemetry.engine import DockerEngineClient
from dockwatch.telemetry.errors import (
    DockerEngineError,
    EngineAPIError,
    EngineProtocolError,
    EngineTransportError,
    NoEndpointAvailable,
)
from dockwatch.telemetry.gateway import RequestGateway
from dockwatch.telemetry.health_monitor import HealthMonitor
from dockwatch.telemetry.schemas import (
    Alert,
    ContainerDetails,
    ContainerSnapshot,
    ContainerState,
    Endpoint,
    LogRecord,
    MetricSample,
    PollResult,
    ResourceTotals,
    VersionInfo,
)
from dockwatch.telemetry.stats import MetricsHistory
from dockwatch.telemetry.transport import (
    ClientFactory,
    TransportResolver,
    default_client_factory,
)

logger = logging.getLogger(__name__)

CONNECTION_TEST_TIMEOUT_SECONDS = 5.0


class ContainerMonitorService(PeriodicPoller):
    """
    Polls the engine and keeps per-container state.

    Each cycle:
    - Lists all containers
    - Fetches stats and restart counts for running containers concurrently
    - Feeds the snapshots to the health monitor and dispatches its alerts
    """

    def __init__(
        self,
        config: Optional[DockWatchConfig] = None,
        notifier: Optional[Notifier] = None,
        client_factory: Optional[ClientFactory] = None,
        platform: Optional[str] = None,
    ):
        """
        Initialize the monitor service.

        Args:
            config: Configuration, uses defaults if not provided
            notifier: Notification sink, defaults to the alert log stream
            client_factory: Builds HTTP clients per endpoint
            platform: Platform override for endpoint filtering
        """
        self.config = config or DockWatchConfig()
        super().__init__(
            name="ContainerMonitor",
            interval_seconds=self.config.settings.refresh_interval_seconds,
        )

        connectivity = self.config.connectivity
        monitor = self.config.monitor

        self._client_factory = client_factory or default_client_factory
        self.resolver = TransportResolver(
            self.config.candidate_endpoints(),
            max_retries=connectivity.max_discovery_retries,
            retry_delay=connectivity.discovery_retry_delay,
            probe_timeout=connectivity.probe_timeout,
            client_factory=self._client_factory,
            platform=platform,
        )
        self.gateway = RequestGateway(
            self.resolver,
            max_attempts=connectivity.request_attempts,
            timeout=connectivity.request_timeout,
        )
        self.engine = DockerEngineClient(self.gateway)
        self.health = HealthMonitor(restart_loop_threshold=monitor.restart_loop_threshold)
        self.metrics = MetricsHistory(size=monitor.history_size)
        self.alerts = AlertDispatcher(
            AlertLog(capacity=monitor.alert_log_size, path=monitor.alert_log_path),
            notifier=notifier,
            notifications_enabled=self.config.settings.show_notifications,
        )

        self._connected: Optional[bool] = None
        self._selected_id: Optional[str] = None
        self._last_result: Optional[PollResult] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.alerts.alert_log.load()
        await super().start()

    async def close(self) -> None:
        """Stop polling and release HTTP clients."""
        await self.stop()
        await self.resolver.aclose()

    async def apply_settings(self, settings: UserSettings) -> None:
        """
        Apply changed user settings.

        A new engine URL replaces the candidate list and drops the active
        transport; a new interval takes effect on the running loop.
        """
        previous = self.config.settings
        self.config = self.config.model_copy(update={"settings": settings})
        self.alerts.notifications_enabled = settings.show_notifications

        if settings.refresh_interval_seconds != previous.refresh_interval_seconds:
            self.set_interval(settings.refresh_interval_seconds)

        if settings.engine_api_url != previous.engine_api_url:
            logger.info(
                f"Engine URL changed from {previous.engine_api_url} to {settings.engine_api_url}"
            )
            await self.resolver.reconfigure(self.config.candidate_endpoints())

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    async def poll(self) -> PollResult:
        return await self.poll_once()

    async def poll_once(self) -> PollResult:
        """
        Run one poll cycle.

        Never raises for engine failures: an unreachable engine produces a
        disconnected result, and a failing container only loses its sample.
        """
        try:
            summaries = await self.engine.list_containers(all=True)
        except DockerEngineError as e:
            return await self._disconnected(e)

        running = [
            s.id for s in summaries if ContainerState.parse(s.state) == ContainerState.RUNNING
        ]
        collected = await asyncio.gather(*(self._collect_running(cid) for cid in running))
        details: Dict[str, Tuple[int, Optional[MetricSample]]] = dict(zip(running, collected))

        snapshots = [
            ContainerSnapshot.from_summary(s, restart_count=details.get(s.id, (0, None))[0])
            for s in summaries
        ]
        samples = {cid: sample for cid, (_, sample) in details.items()}

        alerts = self.health.observe(snapshots)
        self.metrics.prune([s.container_id for s in snapshots])

        if self._connected is False:
            logger.info("Docker engine connection restored")
        self._connected = True

        await self.alerts.dispatch(alerts)

        active = self.resolver.active
        result = PollResult(
            connected=True,
            endpoint=active.label if active else None,
            containers=snapshots,
            samples=samples,
            alerts=alerts,
            totals=self._totals(samples),
        )
        self._last_result = result

        logger.info(
            f"Polled {len(snapshots)} containers ({len(running)} running, "
            f"{sum(1 for s in samples.values() if s is None)} stats failures, {len(alerts)} alerts)"
        )
        return result

    async def _collect_running(self, container_id: str) -> Tuple[int, Optional[MetricSample]]:
        """Fetch stats and restart count for one running container. Never raises."""
        with LogContext(container_id=container_id):
            stats, inspect = await asyncio.gather(
                self.engine.container_stats(container_id),
                self.engine.inspect_container(container_id),
                return_exceptions=True,
            )

            sample = None
            if isinstance(stats, BaseException):
                logger.warning(f"Failed to get stats for {container_id[:12]}: {stats}")
            else:
                sample = self.metrics.record(container_id, stats)

            restart_count = 0
            if isinstance(inspect, BaseException):
                logger.warning(f"Failed to inspect {container_id[:12]}: {inspect}")
            else:
                restart_count = inspect.restart_count

        return restart_count, sample

    async def _disconnected(self, error: DockerEngineError) -> PollResult:
        logger.error(f"Error monitoring Docker: {error}")

        alerts: List[Alert] = []
        if self._connected is not False:
            alerts.append(Alert(message=f"Error monitoring Docker: {error}"))
            await self.alerts.dispatch(alerts)
        self._connected = False

        result = PollResult(connected=False, alerts=alerts, error=str(error))
        self._last_result = result
        return result

    def _totals(self, samples: Dict[str, Optional[MetricSample]]) -> ResourceTotals:
        present = [s for s in samples.values() if s is not None]
        return ResourceTotals(
            cpu_percent=round(sum(s.cpu_percent for s in present), 2),
            memory_usage=sum(s.memory_usage for s in present),
            containers_sampled=len(present),
        )

    @property
    def last_result(self) -> Optional[PollResult]:
        return self._last_result

    # ------------------------------------------------------------------
    # On-demand operations
    # ------------------------------------------------------------------

    def select_container(self, container_id: Optional[str]) -> None:
        """Set the container whose details are being viewed."""
        self._selected_id = container_id

    @property
    def selected_container(self) -> Optional[str]:
        return self._selected_id

    async def refresh_selected(self) -> Optional[ContainerDetails]:
        """
        Fetch inspect data and logs for the selected container.

        Returns None if nothing is selected, or if the selection changed while
        the request was in flight, whether or not the requests succeeded. A
        failed log fetch leaves the logs empty.

        Raises:
            DockerEngineError: If inspecting the still-selected container failed
        """
        container_id = self._selected_id
        if not container_id:
            return None

        with LogContext(container_id=container_id):
            inspect, logs = await asyncio.gather(
                self.engine.inspect_container(container_id),
                self.engine.container_logs(container_id, tail=self.config.monitor.log_tail),
                return_exceptions=True,
            )

            if self._selected_id != container_id:
                logger.debug(f"Discarding stale details for {container_id[:12]}")
                return None

            if isinstance(inspect, BaseException):
                raise inspect
            if isinstance(logs, BaseException):
                logger.warning(f"Failed to get logs for {container_id[:12]}: {logs}")
                logs = []

        return ContainerDetails(
            inspect=inspect, logs=logs, sample=self.metrics.latest(container_id)
        )

    async def search_logs(self, container_id: str, term: str) -> List[LogRecord]:
        return await self.engine.search_logs(
            container_id, term, tail=self.config.monitor.search_tail
        )

    async def restart_container(self, container_id: str) -> None:
        with LogContext(container_id=container_id):
            await self.engine.restart_container(container_id)

    async def retry_connection(self) -> Optional[Endpoint]:
        """Run a fresh discovery cycle, e.g. after the user clicks retry."""
        self.resolver.invalidate("manual retry")
        try:
            return await self.resolver.resolve()
        except NoEndpointAvailable as e:
            logger.warning(f"Manual retry failed: {e}")
            return None

    async def test_connection(self, url: Optional[str] = None) -> VersionInfo:
        """
        Query the engine version at a URL, or through the active transport.

        Testing a URL does not touch the active transport.

        Raises:
            DockerEngineError: If the engine could not be reached or answered badly
        """
        if url is None:
            return await self.engine.version()

        path = "/version"
        endpoint = Endpoint.from_url(url)
        async with self._client_factory(endpoint) as client:
            try:
                response = await client.get(path, timeout=CONNECTION_TEST_TIMEOUT_SECONDS)
            except httpx.TransportError as e:
                raise EngineTransportError(path, 1, e) from e

        if not response.is_success:
            raise EngineAPIError(response.status_code, path, response.text)
        try:
            return VersionInfo.model_validate(response.json())
        except ValueError as e:
            raise EngineProtocolError(path, str(e)) from e

    def get_stats(self) -> dict:
        stats = super().get_stats()
        stats.update(
            {
                "connected": self._connected,
                "resolver": self.resolver.get_stats(),
                "gateway": self.gateway.get_stats(),
                "tracked_containers": len(self.health.history),
                "alerts": len(self.alerts.alert_log),
            }
        )
        return stats


async def run_monitor_service(config: Optional[DockWatchConfig] = None) -> None:
    """
    Run the monitor until SIGINT or SIGTERM.

    This is the main entry point for running DockWatch as a service.

    Args:
        config: Configuration, uses defaults if not provided
    """
    service = ContainerMonitorService(config)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await service.start()
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        await service.close()
