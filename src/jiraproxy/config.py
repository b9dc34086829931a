"""Configuration management for jira-proxy.

Settings are loaded from ./.jiraproxy/settings.toml (in the current working directory) with the following precedence:
1. CLI flags (highest)
2. Environment variables
3. Config file
4. Built-in defaults (lowest)

The resulting ProxyConfig is frozen: it is loaded once at process start and
handed explicitly to the server and the credential resolver.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import toml

# Default paths - stored in current working directory
PROXY_HOME = Path.cwd() / ".jiraproxy"
SETTINGS_FILE = PROXY_HOME / "settings.toml"

DEFAULT_USER_AGENT = "JIRA-Proxy-Server/1.0"
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3001",  # Local proxy
    "https://claude.ai",
)


@dataclass(frozen=True)
class ServerConfig:
    """Server configuration section."""

    host: str = "127.0.0.1"
    port: int = 3001


@dataclass(frozen=True)
class UpstreamConfig:
    """Settings for calls made to JIRA."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0  # seconds


@dataclass(frozen=True)
class CorsConfig:
    """CORS configuration section."""

    allowed_origins: tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration section."""

    level: str = "debug"  # log file
    console_level: str = "warning"
    log_dir: str = ""  # empty: ./.jiraproxy/logs


@dataclass(frozen=True)
class ServiceTenant:
    """Service-wide JIRA credentials for the designated internal consumer.

    Requests presenting consumer_id in the x-jira-consumer header that leave
    out any credential field are sent upstream with this whole set instead.
    """

    server_url: str = ""
    username: str = ""
    api_token: str = ""
    consumer_id: str = ""

    @property
    def enabled(self) -> bool:
        """True when a consumer id is configured."""
        return bool(self.consumer_id)


@dataclass(frozen=True)
class ProxyConfig:
    """Main configuration container."""

    server: ServerConfig = field(default_factory=ServerConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cors: CorsConfig = field(default_factory=CorsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    service: ServiceTenant = field(default_factory=ServiceTenant)


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "PORT": ("server", "port"),
    "JIRA_PROXY_HOST": ("server", "host"),
    "JIRA_PROXY_LOG_LEVEL": ("logging", "level"),
    "JIRA_SERVICE_SERVER_URL": ("service", "server_url"),
    "JIRA_SERVICE_USERNAME": ("service", "username"),
    "JIRA_SERVICE_API_TOKEN": ("service", "api_token"),
    "JIRA_SERVICE_CONSUMER_ID": ("service", "consumer_id"),
}


def ensure_proxy_home() -> None:
    """Create the jira-proxy home directory if it doesn't exist."""
    PROXY_HOME.mkdir(parents=True, exist_ok=True)


def _merge_section(section: Any, data: dict[str, Any]) -> Any:
    """Return a copy of a config section with known keys from data applied."""
    known = {k: v for k, v in data.items() if k in section.__dataclass_fields__}
    if "allowed_origins" in known:
        known["allowed_origins"] = tuple(known["allowed_origins"])
    if "port" in known:
        known["port"] = int(known["port"])
    if "timeout" in known:
        known["timeout"] = float(known["timeout"])
    return replace(section, **known)


def apply_overrides(config: ProxyConfig, overrides: dict[str, dict[str, Any]]) -> ProxyConfig:
    """Apply per-section overrides, returning a new config.

    Args:
        config: The base configuration.
        overrides: Mapping of section name to {key: value}.

    Returns:
        A new ProxyConfig with the overrides merged in.
    """
    sections = {}
    for name, values in overrides.items():
        if not values or not hasattr(config, name):
            continue
        sections[name] = _merge_section(getattr(config, name), values)
    return replace(config, **sections)


def load_config(environ: Mapping[str, str] | None = None) -> ProxyConfig:
    """Load configuration from settings.toml and the environment, merging with defaults.

    Args:
        environ: Environment mapping to read overrides from (defaults to os.environ).

    Returns:
        The effective, immutable configuration.
    """
    config = ProxyConfig()

    if SETTINGS_FILE.exists():
        try:
            data = toml.load(SETTINGS_FILE)
        except (toml.TomlDecodeError, OSError):
            data = {}
        sections = ("server", "upstream", "cors", "logging", "service")
        config = apply_overrides(config, {name: data.get(name, {}) for name in sections})

    environ = os.environ if environ is None else environ
    env_values: dict[str, dict[str, Any]] = {}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            env_values.setdefault(section, {})[key] = value

    return apply_overrides(config, env_values)


def save_config(config: ProxyConfig) -> None:
    """Save configuration to settings.toml."""
    ensure_proxy_home()

    data: dict[str, Any] = {
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
        "upstream": {
            "user_agent": config.upstream.user_agent,
            "timeout": config.upstream.timeout,
        },
        "cors": {
            "allowed_origins": list(config.cors.allowed_origins),
        },
        "logging": {
            "level": config.logging.level,
            "console_level": config.logging.console_level,
            "log_dir": config.logging.log_dir,
        },
        "service": {
            "server_url": config.service.server_url,
            "username": config.service.username,
            "api_token": config.service.api_token,
            "consumer_id": config.service.consumer_id,
        },
    }

    with open(SETTINGS_FILE, "w") as f:
        toml.dump(data, f)


def create_default_config() -> bool:
    """Create a default settings.toml if it doesn't exist.

    Returns:
        True if a new config was created (first run), False if it already existed.
    """
    ensure_proxy_home()

    if SETTINGS_FILE.exists():
        return False

    commented_config = '''# jira-proxy Configuration
# Credential-forwarding proxy between browser clients and JIRA Cloud.

[server]
host = "127.0.0.1"
# Can also be set with the PORT environment variable
port = 3001

[upstream]
# Sent as User-Agent on every call to JIRA
user_agent = "JIRA-Proxy-Server/1.0"
# Seconds to wait for JIRA before failing the request
timeout = 30

[cors]
# Origins allowed to call the proxy from a browser
allowed_origins = [
    "http://localhost:5173",
    "http://localhost:3001",
    "https://claude.ai",
]

[logging]
# Levels: debug, info, warning, error, critical
# File log level (./.jiraproxy/logs/proxy.log)
level = "debug"
# Console (stderr) level; --verbose switches it to debug
console_level = "warning"
# Directory for proxy.log and performance.log; empty uses ./.jiraproxy/logs
log_dir = ""

# =============================================================================
# Service tenant (optional)
# =============================================================================
# A single internal consumer may call the proxy without sending credentials.
# It identifies itself with the header "x-jira-consumer: <consumer_id>". When it
# leaves out any credential, all three values are taken from this section.
# Prefer the JIRA_SERVICE_* environment variables for the API token.
# =============================================================================

[service]
# server_url = "your-org.atlassian.net"
# username = "service-account@example.com"
# api_token = ""
# consumer_id = ""
'''

    SETTINGS_FILE.write_text(commented_config)
    return True
