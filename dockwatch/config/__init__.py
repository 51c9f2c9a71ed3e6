"""DockWatch configuration."""

from dockwatch.config.settings import (
    ConnectivityConfig,
    DockWatchConfig,
    LoggingConfig,
    MonitorConfig,
    Theme,
    UserSettings,
)

__all__ = [
    "ConnectivityConfig",
    "DockWatchConfig",
    "LoggingConfig",
    "MonitorConfig",
    "Theme",
    "UserSettings",
]
