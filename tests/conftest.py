"""Shared pytest fixtures for jira-proxy tests."""

import base64
import logging
from typing import Any

import httpx
import pytest
from aiohttp.test_utils import TestClient, TestServer

from jiraproxy.api.server import JiraProxyServer
from jiraproxy.config import ProxyConfig, ServiceTenant
from jiraproxy.logging import PERFORMANCE_LOGGER, ROOT_LOGGER


class MockJira:
    """Records upstream requests and answers with a canned response."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._response: dict[str, Any] = {"status_code": 200, "json": {}}
        self._error: Exception | None = None

    def reply(
        self,
        status_code: int = 200,
        json: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Set the response for subsequent upstream calls."""
        response: dict[str, Any] = {"status_code": status_code, "headers": headers}
        if json is not None:
            response["json"] = json
        elif text is not None:
            response["text"] = text
        self._response = response

    def fail(self, error: Exception) -> None:
        """Make subsequent upstream calls raise error."""
        self._error = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if self._error is not None:
            raise self._error
        return httpx.Response(**self._response)

    @property
    def last_request(self) -> httpx.Request:
        assert self.requests, "no upstream request was made"
        return self.requests[-1]


def encode_basic_auth(username: str, token: str) -> str:
    return "Basic " + base64.b64encode(f"{username}:{token}".encode()).decode()


@pytest.fixture
def basic_auth():
    """Return a helper building the expected Authorization header."""
    return encode_basic_auth


@pytest.fixture
def credentials() -> dict[str, str]:
    """Credentials as a client would put them in a request body."""
    return {
        "serverUrl": "example.atlassian.net",
        "username": "dev@example.com",
        "apiToken": "token-1234567890",
    }


@pytest.fixture
def mock_jira() -> MockJira:
    """Create a mock JIRA upstream."""
    return MockJira()


@pytest.fixture
def proxy_config() -> ProxyConfig:
    """Create a configuration with a service tenant enabled."""
    return ProxyConfig(
        service=ServiceTenant(
            server_url="service.atlassian.net",
            username="svc@example.com",
            api_token="svc-token-abcdefgh",
            consumer_id="internal-reporter",
        )
    )


@pytest.fixture
def proxy_server(proxy_config: ProxyConfig, mock_jira: MockJira) -> JiraProxyServer:
    """Create a proxy server whose upstream calls hit mock_jira."""
    return JiraProxyServer(proxy_config, transport=httpx.MockTransport(mock_jira.handler))


@pytest.fixture
async def client(proxy_server: JiraProxyServer) -> TestClient:
    """Create an HTTP test client for the proxy."""
    async with TestClient(TestServer(proxy_server.app)) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def detach_log_handlers():
    """Remove handlers a test attached through configure_logging."""
    yield
    for name in (ROOT_LOGGER, PERFORMANCE_LOGGER):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
