"""Command-line interface for jira-proxy.

Provides commands to run the proxy and inspect its configuration.
"""

import asyncio
from dataclasses import replace

import click

from . import __version__
from .config import SETTINGS_FILE, create_default_config, load_config
from .logging import configure_logging, get_logger, logs_dir, mask_secret


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def main(ctx: click.Context, version: bool) -> None:
    """jira-proxy - Credential-forwarding proxy for JIRA Cloud.

    Lets a browser extension or web client call a tenant's JIRA REST API
    without CORS restrictions.

    Examples:

        jira-proxy serve                  Run the proxy on 127.0.0.1:3001

        jira-proxy serve --port 8080      Run the proxy on another port

        jira-proxy config show            Show the effective configuration
    """
    if version:
        click.echo(f"jira-proxy version {__version__}")
        return

    # No subcommand specified, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command("serve")
@click.option("--host", help="Interface to bind (overrides config)")
@click.option("--port", "-p", type=int, help="Port to listen on (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Show debug output on the console")
def serve(host: str | None, port: int | None, verbose: bool) -> None:
    """Run the proxy server."""
    from .api.server import run_server

    config = load_config()
    log_dir = configure_logging(config.logging, verbose=verbose)
    get_logger("cli").debug(f"Writing logs to {log_dir}")

    server = replace(
        config.server,
        host=host or config.server.host,
        port=port or config.server.port,
    )
    config = replace(config, server=server)

    asyncio.run(run_server(config))


@main.group("config")
def config_group() -> None:
    """Inspect and initialize the settings file."""


@config_group.command("init")
def config_init() -> None:
    """Write a default settings file if none exists."""
    if create_default_config():
        click.echo(f"Created {SETTINGS_FILE}")
    else:
        click.echo(f"{SETTINGS_FILE} already exists.")


@config_group.command("show")
def config_show() -> None:
    """Show the effective configuration (secrets masked)."""
    config = load_config()

    click.echo(f"Settings file: {SETTINGS_FILE}")
    click.echo()
    click.secho("Server", bold=True)
    click.echo(f"  Listen:     {config.server.host}:{config.server.port}")
    click.secho("Upstream", bold=True)
    click.echo(f"  User-Agent: {config.upstream.user_agent}")
    click.echo(f"  Timeout:    {config.upstream.timeout}s")
    click.secho("Logging", bold=True)
    click.echo(f"  File level: {config.logging.level}")
    click.echo(f"  Console:    {config.logging.console_level}")
    click.echo(f"  Directory:  {logs_dir(config.logging)}")
    click.secho("CORS", bold=True)
    for origin in config.cors.allowed_origins:
        click.echo(f"  - {origin}")
    click.secho("Service tenant", bold=True)
    if config.service.enabled:
        click.echo(f"  Server:     {config.service.server_url or '(not set)'}")
        click.echo(f"  Username:   {config.service.username or '(not set)'}")
        click.echo(f"  API token:  {mask_secret(config.service.api_token) or '(not set)'}")
    else:
        click.echo("  Disabled (no consumer_id configured)")


if __name__ == "__main__":
    main()
