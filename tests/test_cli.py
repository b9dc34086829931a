"""Tests for the command-line interface."""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from jiraproxy import __version__
from jiraproxy.cli import main
from jiraproxy.logging import mask_secret


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    """Create a CLI runner with settings in a temp directory."""
    monkeypatch.setattr("jiraproxy.config.SETTINGS_FILE", tmp_path / "settings.toml")
    monkeypatch.setattr("jiraproxy.cli.SETTINGS_FILE", tmp_path / "settings.toml")
    monkeypatch.setattr("jiraproxy.config.PROXY_HOME", tmp_path)
    for var in ("PORT", "JIRA_PROXY_LOG_LEVEL", "JIRA_SERVICE_API_TOKEN", "JIRA_SERVICE_CONSUMER_ID"):
        monkeypatch.delenv(var, raising=False)
    return CliRunner()


def test_version(runner):
    result = runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_init(runner, tmp_path):
    result = runner.invoke(main, ["config", "init"])

    assert result.exit_code == 0
    assert (tmp_path / "settings.toml").exists()

    result = runner.invoke(main, ["config", "init"])
    assert "already exists" in result.output


def test_config_show_masks_token(runner, monkeypatch):
    monkeypatch.setenv("JIRA_SERVICE_API_TOKEN", "abcdefghijklmnop")
    monkeypatch.setenv("JIRA_SERVICE_CONSUMER_ID", "reporter")

    result = runner.invoke(main, ["config", "show"])

    assert result.exit_code == 0
    assert "abcd...mnop" in result.output
    assert "abcdefghijklmnop" not in result.output


def test_serve_applies_flags(runner, tmp_path):
    with patch("jiraproxy.api.server.run_server", new=AsyncMock()) as run_server:
        result = runner.invoke(main, ["serve", "--host", "0.0.0.0", "--port", "8088"])

    assert result.exit_code == 0
    config = run_server.call_args.args[0]
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 8088
    assert (tmp_path / "logs" / "proxy.log").exists()


@pytest.mark.parametrize(
    ("secret", "masked"),
    [("", ""), (None, ""), ("short", "****"), ("12345678", "****"), ("abcdefghij", "abcd...ghij")],
)
def test_mask_secret(secret, masked):
    assert mask_secret(secret) == masked
