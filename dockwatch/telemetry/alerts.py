"""
Alert log and notification sinks.

Every alert lands in a bounded in-memory log (optionally mirrored to a JSON
file). Notifications go to a Notifier unless they are disabled in settings.
"""

import json
import logging
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Protocol, runtime_checkable

import aiofiles

from dockwatch.logging_config import log_alert
from dockwatch.telemetry.schemas import Alert

logger = logging.getLogger(__name__)

ALERT_LOG_SIZE = 20


@runtime_checkable
class Notifier(Protocol):
    """Sink for user-facing notifications."""

    async def notify(self, alert: Alert) -> None:
        """
        Deliver one alert.

        Promises:
        - Never raises exceptions
        """
        ...


class LoggingNotifier:
    """Delivers notifications to the dedicated alert log stream."""

    async def notify(self, alert: Alert) -> None:
        log_alert(alert.message, container_id=alert.container_id)


class AlertLog:
    """Bounded log of recent alerts, optionally persisted as JSON."""

    def __init__(self, capacity: int = ALERT_LOG_SIZE, path: Optional[str] = None):
        self.capacity = capacity
        self.path = Path(path) if path else None
        self._alerts: Deque[Alert] = deque(maxlen=capacity)

    def append(self, alert: Alert) -> None:
        self._alerts.append(alert)

    def recent(self) -> List[Alert]:
        """Alerts oldest first."""
        return list(self._alerts)

    def clear(self) -> None:
        self._alerts.clear()

    def __len__(self) -> int:
        return len(self._alerts)

    async def load(self) -> None:
        """Load persisted alerts, keeping the newest `capacity` entries."""
        if not self.path or not self.path.exists():
            return

        try:
            async with aiofiles.open(self.path, "r") as f:
                records = json.loads(await f.read())
            for record in records[-self.capacity :]:
                self._alerts.append(Alert.model_validate(record))
            logger.debug(f"Loaded {len(self._alerts)} alerts from {self.path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load alert log from {self.path}: {e}")

    async def save(self) -> None:
        """Write the current alerts as a JSON list of {message, time}."""
        if not self.path:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, "w") as f:
                await f.write(json.dumps([a.to_record() for a in self._alerts], indent=2))
        except OSError as e:
            logger.error(f"Failed to persist alert log to {self.path}: {e}")


class AlertDispatcher:
    """Records alerts and forwards them to the notifier."""

    def __init__(
        self,
        alert_log: Optional[AlertLog] = None,
        notifier: Optional[Notifier] = None,
        notifications_enabled: bool = True,
    ):
        self.alert_log = alert_log or AlertLog()
        self.notifier = notifier or LoggingNotifier()
        self.notifications_enabled = notifications_enabled

    async def dispatch(self, alerts: List[Alert]) -> None:
        """Append alerts to the log, notify, then persist once."""
        if not alerts:
            return

        for alert in alerts:
            self.alert_log.append(alert)
            if not self.notifications_enabled:
                logger.info(f"Notification suppressed (disabled in settings): {alert.message}")
                continue
            try:
                await self.notifier.notify(alert)
            except Exception as e:
                logger.error(f"Notifier failed for alert '{alert.message}': {e}")

        await self.alert_log.save()
