"""Logging for jira-proxy.

Loggers are children of "jiraproxy". Handlers are attached once, by
configure_logging(), from the [logging] section of the settings:
- proxy.log: requests, upstream calls and errors at the configured file level
- performance.log: one line per upstream call with its duration
- stderr: the configured console level (debug with --verbose)
"""

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from . import config as _config
from .config import LoggingConfig

ROOT_LOGGER = "jiraproxy"
PERFORMANCE_LOGGER = "jiraproxy.performance"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

_FILE_FORMAT = logging.Formatter(
    "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_PERFORMANCE_FORMAT = logging.Formatter("%(asctime)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
_CONSOLE_FORMAT = logging.Formatter("%(levelname)s: %(message)s")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _parse_log_level(level_str: str) -> int:
    """Parse a level name from the settings file; unknown names mean INFO."""
    return _LEVELS.get(str(level_str).strip().lower(), logging.INFO)


def logs_dir(settings: LoggingConfig) -> Path:
    """Directory holding proxy.log and performance.log."""
    if settings.log_dir:
        return Path(settings.log_dir).expanduser()
    return _config.PROXY_HOME / "logs"


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Return the "jiraproxy" logger or one of its children.

    Args:
        name: Child name, e.g. "server" for "jiraproxy.server".
    """
    if name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def _rotating_file(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _drop_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def configure_logging(settings: LoggingConfig | None = None, verbose: bool = False) -> Path:
    """Attach file and console handlers according to the [logging] settings.

    Calling it again replaces the handlers from the previous call.

    Args:
        settings: Logging section of the loaded configuration.
        verbose: If True, the console shows debug output regardless of settings.

    Returns:
        The directory the log files are written to.
    """
    settings = settings or LoggingConfig()
    directory = logs_dir(settings)
    directory.mkdir(parents=True, exist_ok=True)

    console_level = logging.DEBUG if verbose else _parse_log_level(settings.console_level)

    main_logger = get_logger()
    _drop_handlers(main_logger)
    # Handlers filter; the logger passes everything through
    main_logger.setLevel(logging.DEBUG)
    main_logger.addHandler(
        _rotating_file(directory / "proxy.log", _parse_log_level(settings.level), _FILE_FORMAT)
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_CONSOLE_FORMAT)
    main_logger.addHandler(console)

    perf_logger = logging.getLogger(PERFORMANCE_LOGGER)
    _drop_handlers(perf_logger)
    perf_logger.setLevel(logging.INFO)
    perf_logger.propagate = False
    perf_logger.addHandler(
        _rotating_file(directory / "performance.log", logging.INFO, _PERFORMANCE_FORMAT)
    )

    return directory


def mask_secret(secret: str | None) -> str:
    """Mask a secret for log output.

    Keeps the first and last four characters of anything longer than eight,
    e.g. "abcd...wxyz". Shorter secrets are fully hidden.
    """
    if not secret:
        return ""
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"


class PerformanceTimer:
    """Time an upstream call and write one line to performance.log.

    Usage:
        with PerformanceTimer("get_tasks", method="POST") as timer:
            response = await client.post(...)
            timer.add_metric("status", response.status_code)
    """

    def __init__(self, operation: str, **metrics: Any):
        self.operation = operation
        self.metrics = metrics
        self._started: float | None = None

    def __enter__(self) -> "PerformanceTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._started is None:
            return
        if exc_type is not None:
            self.metrics["error"] = exc_type.__name__

        duration_ms = (time.perf_counter() - self._started) * 1000
        parts = [f"op={self.operation}", f"duration_ms={duration_ms:.2f}"]
        parts.extend(f"{key}={value}" for key, value in self.metrics.items())
        logging.getLogger(PERFORMANCE_LOGGER).info(" | ".join(parts))

    def add_metric(self, key: str, value: Any) -> None:
        """Add a metric to the line written on exit."""
        self.metrics[key] = value
