"""
Configuration models for DockWatch.

Configuration is stored as YAML. UserSettings mirrors the settings store keys
(engineApiUrl, refreshIntervalSeconds, showNotifications, theme) and accepts
either those camelCase names or their snake_case equivalents.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from dockwatch.telemetry.schemas import DEFAULT_ENDPOINTS, Endpoint

logger = logging.getLogger(__name__)


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class UserSettings(BaseModel):
    """Settings exposed to the user."""

    model_config = ConfigDict(populate_by_name=True)

    engine_api_url: Optional[str] = Field(default=None, alias="engineApiUrl")
    refresh_interval_seconds: int = Field(default=30, ge=1, alias="refreshIntervalSeconds")
    show_notifications: bool = Field(default=True, alias="showNotifications")
    theme: Theme = Theme.LIGHT

    @field_validator("engine_api_url")
    @classmethod
    def validate_engine_api_url(cls, value: Optional[str]) -> Optional[str]:
        if value in (None, ""):
            return None
        Endpoint.from_url(value)
        return value.rstrip("/")


class ConnectivityConfig(BaseModel):
    """Endpoint discovery and request retry tuning."""

    endpoints: List[Endpoint] = Field(default_factory=lambda: list(DEFAULT_ENDPOINTS))
    max_discovery_retries: int = Field(default=3, ge=1)
    discovery_retry_delay: float = Field(default=1.0, ge=0)
    request_attempts: int = Field(default=3, ge=1)
    probe_timeout: float = Field(default=2.0, gt=0)
    request_timeout: float = Field(default=5.0, gt=0)


class MonitorConfig(BaseModel):
    """Polling, history and alerting limits."""

    history_size: int = Field(default=20, ge=1)
    alert_log_size: int = Field(default=20, ge=1)
    alert_log_path: Optional[str] = None
    log_tail: int = Field(default=100, ge=1)
    search_tail: int = Field(default=1000, ge=1)
    restart_loop_threshold: int = Field(default=3, ge=0)


class LoggingConfig(BaseModel):
    log_dir: str = "/var/log/dockwatch"
    console_level: str = "INFO"
    file_level: str = "DEBUG"
    use_json: bool = False


class DockWatchConfig(BaseModel):
    """Complete DockWatch configuration."""

    settings: UserSettings = Field(default_factory=UserSettings)
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def candidate_endpoints(self) -> List[Endpoint]:
        """
        Endpoints to probe, in priority order.

        A configured engine URL goes first, ahead of the defaults.
        """
        endpoints = sorted(self.connectivity.endpoints, key=lambda e: e.priority)
        if not self.settings.engine_api_url:
            return endpoints

        preferred = Endpoint.from_url(self.settings.engine_api_url, priority=0)
        rest = [
            e.model_copy(update={"priority": i + 1})
            for i, e in enumerate(endpoints)
            if (e.kind, e.address) != (preferred.kind, preferred.address)
        ]
        return [preferred] + rest

    @classmethod
    def from_file(cls, path: str) -> "DockWatchConfig":
        """
        Load configuration from a YAML file.

        A missing file yields the defaults.
        """
        config_path = Path(path)
        if not config_path.exists():
            logger.warning(f"Config file {path} not found, using defaults")
            return cls()

        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.model_validate(data)

    def save(self, path: str) -> None:
        """Write configuration as YAML."""
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", by_alias=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
