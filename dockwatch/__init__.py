"""DockWatch - Docker container telemetry and alerting."""

__version__ = "1.0.0"
