"""Tests for logging configuration."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from jiraproxy.config import LoggingConfig
from jiraproxy.logging import (
    PERFORMANCE_LOGGER,
    PerformanceTimer,
    _parse_log_level,
    configure_logging,
    get_logger,
    logs_dir,
)


def _handlers(name: str = "jiraproxy") -> tuple[RotatingFileHandler, logging.StreamHandler]:
    handlers = logging.getLogger(name).handlers
    file_handler = next(h for h in handlers if isinstance(h, RotatingFileHandler))
    console = next(h for h in handlers if not isinstance(h, RotatingFileHandler))
    return file_handler, console


@pytest.mark.parametrize(
    ("name", "level"),
    [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        (" warning ", logging.WARNING),
        ("error", logging.ERROR),
        ("critical", logging.CRITICAL),
        ("chatty", logging.INFO),
    ],
)
def test_parse_log_level(name, level):
    assert _parse_log_level(name) == level


def test_get_logger_names():
    assert get_logger().name == "jiraproxy"
    assert get_logger("server").name == "jiraproxy.server"


def test_configured_levels_applied(tmp_path):
    """Test that file and console handlers use the [logging] levels."""
    settings = LoggingConfig(level="info", console_level="error", log_dir=str(tmp_path))

    assert configure_logging(settings) == tmp_path

    file_handler, console = _handlers()
    assert file_handler.level == logging.INFO
    assert console.level == logging.ERROR


def test_default_levels(tmp_path):
    """Test debug to file and warning to console by default."""
    configure_logging(LoggingConfig(log_dir=str(tmp_path)))

    file_handler, console = _handlers()
    assert file_handler.level == logging.DEBUG
    assert console.level == logging.WARNING


def test_verbose_overrides_console_level(tmp_path):
    configure_logging(
        LoggingConfig(console_level="error", log_dir=str(tmp_path)), verbose=True
    )

    _, console = _handlers()
    assert console.level == logging.DEBUG


def test_file_level_filters_records(tmp_path):
    """Test records below the file level never reach proxy.log."""
    configure_logging(LoggingConfig(level="warning", console_level="critical", log_dir=str(tmp_path)))
    logger = get_logger("server")

    logger.info("routine upstream call")
    logger.warning("JIRA answered 401")
    for handler in logging.getLogger("jiraproxy").handlers:
        handler.flush()

    text = (tmp_path / "proxy.log").read_text()
    assert "JIRA answered 401" in text
    assert "routine upstream call" not in text


def test_reconfigure_replaces_handlers(tmp_path):
    settings = LoggingConfig(log_dir=str(tmp_path))

    configure_logging(settings)
    configure_logging(settings)

    assert len(logging.getLogger("jiraproxy").handlers) == 2
    assert len(logging.getLogger(PERFORMANCE_LOGGER).handlers) == 1


def test_logs_dir_defaults_under_proxy_home(tmp_path, monkeypatch):
    monkeypatch.setattr("jiraproxy.config.PROXY_HOME", tmp_path)

    assert logs_dir(LoggingConfig()) == tmp_path / "logs"
    assert logs_dir(LoggingConfig(log_dir="/var/log/jira-proxy")).as_posix() == "/var/log/jira-proxy"


def test_performance_timer_writes_line(tmp_path):
    """Test one performance line per timed call, including failures."""
    configure_logging(LoggingConfig(log_dir=str(tmp_path)))

    with PerformanceTimer("get_tasks", method="POST") as timer:
        timer.add_metric("status", 200)
    with pytest.raises(ValueError):
        with PerformanceTimer("passthrough", method="GET"):
            raise ValueError("boom")
    for handler in logging.getLogger(PERFORMANCE_LOGGER).handlers:
        handler.flush()

    lines = (tmp_path / "performance.log").read_text().splitlines()
    assert len(lines) == 2
    assert "op=get_tasks" in lines[0]
    assert "method=POST" in lines[0]
    assert "status=200" in lines[0]
    assert "op=passthrough" in lines[1]
    assert "error=ValueError" in lines[1]
