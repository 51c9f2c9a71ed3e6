"""
Centralized logging configuration for DockWatch.

Implements file-based logging with rotation, a dedicated alert stream,
and optional structured (JSON) output.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ALERT_LOGGER = "dockwatch.alerts"

_context_fields: ContextVar[Dict[str, Any]] = ContextVar("dockwatch_log_context", default={})
_factory_installed = False


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON for better parsing."""
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add extra fields if present
        if hasattr(record, "container_id"):
            log_obj["container_id"] = record.container_id
        if hasattr(record, "endpoint"):
            log_obj["endpoint"] = record.endpoint

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter for console and file logs."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        """Initialize formatter with optional color support."""
        self.use_colors = use_colors
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format with optional colors for console output."""
        if self.use_colors and record.levelname in self.COLORS:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    log_dir: str = "/var/log/dockwatch",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    use_json: bool = False,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure logging for DockWatch.

    Args:
        log_dir: Directory for log files
        console_level: Console logging level
        file_level: File logging level
        use_json: Use JSON formatting for files
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # Console handler with color
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, console_level))
    console_handler.setFormatter(HumanReadableFormatter(use_colors=sys.stdout.isatty()))
    root_logger.addHandler(console_handler)

    file_formatter = StructuredFormatter() if use_json else HumanReadableFormatter()

    main_handler = logging.handlers.RotatingFileHandler(
        log_path / "dockwatch.log", maxBytes=max_bytes, backupCount=backup_count
    )
    main_handler.setLevel(getattr(logging, file_level))
    main_handler.setFormatter(file_formatter)
    root_logger.addHandler(main_handler)

    # Error-only log for monitoring
    error_handler = logging.handlers.RotatingFileHandler(
        log_path / "error.log", maxBytes=max_bytes, backupCount=backup_count
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_formatter)
    root_logger.addHandler(error_handler)

    # Container alerts get their own file and also reach the console
    alert_logger = logging.getLogger(ALERT_LOGGER)
    alert_logger.handlers.clear()
    alert_handler = logging.handlers.RotatingFileHandler(
        log_path / "alerts.log", maxBytes=max_bytes, backupCount=backup_count
    )
    alert_handler.setFormatter(file_formatter)
    alert_logger.addHandler(alert_handler)
    alert_logger.addHandler(console_handler)
    alert_logger.setLevel(logging.INFO)
    alert_logger.propagate = False

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized - Console: {console_level}, File: {file_level}, "
        f"Directory: {log_dir}, JSON: {use_json}"
    )


def log_alert(message: str, container_id: Optional[str] = None, level: str = "WARNING") -> None:
    """
    Log a container alert to the alert stream.

    Args:
        message: Alert text
        container_id: Container the alert refers to
        level: Log level (INFO, WARNING, ERROR)
    """
    logger = logging.getLogger(ALERT_LOGGER)
    extra = {"container_id": container_id} if container_id else {}
    getattr(logger, level.lower())(message, extra=extra)


def _install_record_factory() -> None:
    global _factory_installed
    if _factory_installed:
        return

    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        for key, value in _context_fields.get().items():
            setattr(record, key, value)
        return record

    logging.setLogRecordFactory(record_factory)
    _factory_installed = True


class LogContext:
    """
    Context manager for adding contextual information to logs.

    Fields live in a context variable, so concurrent tasks (one per container
    in a poll) each tag only their own records.
    """

    def __init__(self, **kwargs: Any):
        """
        Initialize log context.

        Args:
            **kwargs: Context fields to add to all logs, e.g. container_id
        """
        self.context = kwargs
        self._token = None

    def __enter__(self) -> "LogContext":
        """Enter context and inject fields."""
        _install_record_factory()
        self._token = _context_fields.set({**_context_fields.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context and restore the previous fields."""
        if self._token is not None:
            _context_fields.reset(self._token)
            self._token = None
