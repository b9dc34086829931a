"""JIRA REST client used by the proxy handlers.

One JiraClient is built per inbound request from that request's
TenantCredentials. Each method issues exactly one upstream call and returns
the raw httpx.Response so the caller decides how to map it.
"""

import urllib.parse
from typing import Any

import httpx

from ..config import DEFAULT_USER_AGENT
from ..credentials import TenantCredentials
from ..logging import PerformanceTimer, get_logger, mask_secret

logger = get_logger("jira")

DEFAULT_JQL = "assignee = currentUser() AND status != Done ORDER BY updated DESC"

SEARCH_FIELDS = [
    "summary",
    "status",
    "assignee",
    "priority",
    "project",
    "issuetype",
    "timetracking",
    "created",
    "updated",
    "description",
    "worklog",
]

SEARCH_MAX_RESULTS = 100

PROJECT_SEARCH_PARAMS = {
    "maxResults": 100,
    "expand": "description,lead,url,projectKeys",
}

JSON_CONTENT_TYPE = "application/json"


class JiraClient:
    """Thin async wrapper around the JIRA Cloud REST API v3."""

    def __init__(
        self,
        credentials: TenantCredentials,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            credentials: Tenant credentials for this request.
            user_agent: User-Agent sent on every upstream call.
            timeout: Upstream timeout in seconds.
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        self.credentials = credentials
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        """Build the headers shared by every upstream call."""
        headers = {
            "Authorization": self.credentials.basic_auth_header(),
            "Accept": JSON_CONTENT_TYPE,
            "User-Agent": self.user_agent,
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request to the tenant.

        Args:
            operation: Short name used in logs (e.g., "get_tasks").
            method: HTTP method.
            path: Path (and optional query string) appended to the server URL.
            params: Optional query parameters.
            json: Optional JSON body.
            content: Optional raw body, used when json is None.
            headers: Headers overriding the defaults.

        Returns:
            The upstream response.

        Raises:
            httpx.HTTPError: On network failure or timeout.
        """
        url = self.credentials.url(path)
        logger.info(
            f"{operation}: {method} {url} as {self.credentials.username} "
            f"(token {mask_secret(self.credentials.api_token)})"
        )

        with PerformanceTimer(operation, method=method) as timer:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.timeout
            ) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    content=content,
                    headers=self._headers(headers),
                )
            timer.add_metric("status", response.status_code)

        if not response.is_success:
            logger.warning(f"{operation}: JIRA answered {response.status_code}: {response.text}")
        return response

    async def get_myself(self) -> httpx.Response:
        """GET the user the credentials belong to."""
        return await self.request("test_connection", "GET", "/rest/api/3/myself")

    async def search_issues(self, jql: str | None = None) -> httpx.Response:
        """Search issues with JQL, defaulting to the caller's open work."""
        return await self.request(
            "get_tasks",
            "POST",
            "/rest/api/3/search/jql",
            json={
                "jql": jql or DEFAULT_JQL,
                "maxResults": SEARCH_MAX_RESULTS,
                "fields": SEARCH_FIELDS,
            },
        )

    async def search_projects(self) -> httpx.Response:
        """List the projects visible to the caller."""
        return await self.request(
            "get_projects", "GET", "/rest/api/3/project/search", params=PROJECT_SEARCH_PARAMS
        )

    async def add_worklog(self, issue_key: str, payload: dict[str, Any]) -> httpx.Response:
        """Add a worklog entry to an issue."""
        return await self.request(
            "add_worklog", "POST", f"{_issue_path(issue_key)}/worklog", json=payload
        )

    async def get_worklogs(self, issue_key: str) -> httpx.Response:
        """Fetch the worklog collection of an issue."""
        return await self.request("get_worklogs", "GET", f"{_issue_path(issue_key)}/worklog")

    async def forward(
        self,
        method: str,
        path: str,
        *,
        accept: str | None = None,
        content_type: str | None = None,
        body: bytes | None = None,
    ) -> httpx.Response:
        """Forward an arbitrary request to the tenant unchanged."""
        headers = {
            "Accept": accept or JSON_CONTENT_TYPE,
            "Content-Type": content_type or JSON_CONTENT_TYPE,
        }
        return await self.request("passthrough", method, path, content=body, headers=headers)


def _issue_path(issue_key: str) -> str:
    return f"/rest/api/3/issue/{urllib.parse.quote(str(issue_key), safe='')}"
