"""
Container state transition tracking.

The monitor remembers the last observed state of every container and turns
changes between polls into alerts. It does no I/O: observe() takes one poll's
snapshots and returns the alerts for that cycle.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from dockwatch.telemetry.schemas import Alert, ContainerSnapshot, ContainerState

logger = logging.getLogger(__name__)

RESTART_LOOP_THRESHOLD = 3

_EXIT_CODE = re.compile(r"Exited \((-?\d+)\)")


def parse_exit_code(status: str) -> Optional[int]:
    """Extract N from a status like "Exited (N) 5 minutes ago"."""
    match = _EXIT_CODE.search(status or "")
    return int(match.group(1)) if match else None


@dataclass
class ContainerHistory:
    """What the monitor remembers about one container."""

    name: str
    state: ContainerState
    unhealthy_alerted: bool = False
    alerted_restart_count: int = 0


class HealthMonitor:
    """Per-container state machine driving alerts."""

    def __init__(self, restart_loop_threshold: int = RESTART_LOOP_THRESHOLD):
        self.restart_loop_threshold = restart_loop_threshold
        self._history: Dict[str, ContainerHistory] = {}

    @property
    def history(self) -> Dict[str, ContainerHistory]:
        return dict(self._history)

    def last_state(self, container_id: str) -> ContainerState:
        entry = self._history.get(container_id)
        return entry.state if entry else ContainerState.UNKNOWN

    def reset(self) -> None:
        self._history.clear()

    def observe(self, snapshots: List[ContainerSnapshot]) -> List[Alert]:
        """
        Compare one poll's snapshots with the previous poll.

        First sightings only record a baseline. Containers missing from this
        poll raise a removal alert and are forgotten.

        Args:
            snapshots: Every container from a successful poll

        Returns:
            Alerts raised by this cycle, in container order
        """
        alerts: List[Alert] = []
        seen = set()

        for snapshot in snapshots:
            seen.add(snapshot.container_id)
            entry = self._history.get(snapshot.container_id)

            if entry is None:
                self._history[snapshot.container_id] = ContainerHistory(
                    name=snapshot.name,
                    state=snapshot.state,
                    alerted_restart_count=snapshot.restart_count,
                )
                logger.debug(f"Baseline for {snapshot.name}: {snapshot.state.value}")
                continue

            message = self._transition_message(entry.state, snapshot)
            if message:
                alerts.append(Alert(message=message, container_id=snapshot.container_id))

            if snapshot.state == ContainerState.RUNNING:
                alerts.extend(self._running_checks(entry, snapshot))
            else:
                entry.unhealthy_alerted = False

            entry.name = snapshot.name
            entry.state = snapshot.state

        for container_id in [cid for cid in self._history if cid not in seen]:
            entry = self._history.pop(container_id)
            alerts.append(
                Alert(message=f"Container {entry.name} was removed", container_id=container_id)
            )

        for alert in alerts:
            logger.info(f"State alert: {alert.message}")
        return alerts

    def _transition_message(
        self, previous: ContainerState, snapshot: ContainerSnapshot
    ) -> Optional[str]:
        current = snapshot.state
        if previous == current:
            return None

        if previous == ContainerState.RUNNING and current == ContainerState.EXITED:
            code = parse_exit_code(snapshot.status)
            if code == 0:
                return None
            shown = "unknown" if code is None else str(code)
            return f"Container {snapshot.name} stopped unexpectedly with exit code {shown}"

        if previous == ContainerState.EXITED and current == ContainerState.RUNNING:
            return f"Container {snapshot.name} started"

        if current == ContainerState.RESTARTING:
            return f"Container {snapshot.name} is restarting"

        return None

    def _running_checks(self, entry: ContainerHistory, snapshot: ContainerSnapshot) -> List[Alert]:
        """Health and restart-loop checks, raised once per episode."""
        alerts = []

        if "unhealthy" in snapshot.status.lower():
            if not entry.unhealthy_alerted:
                entry.unhealthy_alerted = True
                alerts.append(
                    Alert(
                        message=f"Container {snapshot.name} health check failed",
                        container_id=snapshot.container_id,
                    )
                )
        else:
            entry.unhealthy_alerted = False

        if (
            snapshot.restart_count > self.restart_loop_threshold
            and snapshot.restart_count > entry.alerted_restart_count
        ):
            entry.alerted_restart_count = snapshot.restart_count
            alerts.append(
                Alert(
                    message=f"Container {snapshot.name} restarted {snapshot.restart_count} times",
                    container_id=snapshot.container_id,
                )
            )

        return alerts
