"""HTTP surface of the proxy: aiohttp application, routes and middlewares."""

from .server import JiraProxyServer, rewrite_passthrough_path, run_server

__all__ = ["JiraProxyServer", "rewrite_passthrough_path", "run_server"]
