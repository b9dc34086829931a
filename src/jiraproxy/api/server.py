"""HTTP API server for jira-proxy.

Accepts requests carrying tenant credentials from the browser client,
forwards them to JIRA with Basic auth and relays the responses.
"""

import asyncio
import functools
import json
import signal
import urllib.parse
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Collection, Mapping

import httpx
from aiohttp import hdrs, web

from ..config import ProxyConfig
from ..credentials import (
    TOKEN_QUERY_KEY,
    CredentialResolver,
    MissingCredentialsError,
    TenantCredentials,
)
from ..jira import JiraClient, build_worklog_payload, is_valid_time_spent, parse_error_body
from ..jira.worklog import TIME_FORMAT_HINT
from ..logging import get_logger
from .middleware import cors_middleware, error_middleware, request_logger

logger = get_logger("server")

JIRA_PREFIX = "/jira"
READ_ONLY_METHODS = frozenset({hdrs.METH_GET, hdrs.METH_HEAD})
# Relayed from the search response only when JIRA includes them
PAGINATION_EXTRAS = ("startAt", "isLast")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def rewrite_passthrough_path(
    raw_path: str, query: Mapping[str, str], drop: Collection[str] = ()
) -> str:
    """Map an inbound passthrough path onto the JIRA path.

    "/jira/rest/api/3/issue/KEY-1?fields=summary" becomes
    "/rest/api/3/issue/KEY-1?fields=summary". apiToken is always dropped so
    the token is never put in an upstream URL. Other query parameters are
    forwarded unless listed in drop.

    Args:
        raw_path: Percent-encoded inbound path, starting with JIRA_PREFIX.
        query: Inbound query parameters.
        drop: Query parameters that supplied credentials for this request.

    Returns:
        Path and query string to append to the tenant server URL.
    """
    remainder = raw_path[len(JIRA_PREFIX):] if raw_path.startswith(JIRA_PREFIX) else raw_path
    params = [
        (key, value)
        for key, value in query.items()
        if key != TOKEN_QUERY_KEY and key not in drop
    ]
    if params:
        remainder = f"{remainder}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"
    return remainder


def parse_json_body(raw: bytes) -> dict[str, Any]:
    """Parse an inbound body as a JSON object, or return an empty dict."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def json_error(status: int, error: Any, message: str) -> web.Response:
    """Build the {error, message} response used for validation failures."""
    return web.json_response({"error": error, "message": message}, status=status)


def missing_credentials_response() -> web.Response:
    return json_error(400, "Missing credentials", "Provide serverUrl, username and apiToken")


def upstream_guard(failure_message: str) -> Callable[[Handler], Handler]:
    """Report any exception raised while talking to JIRA as a 500.

    Args:
        failure_message: Operation-specific message put in the response.

    Returns:
        A decorator for handler methods.
    """

    def decorator(handler):
        @functools.wraps(handler)
        async def wrapper(self, request: web.Request) -> web.StreamResponse:
            try:
                return await handler(self, request)
            except web.HTTPException:
                raise
            except Exception as e:
                logger.exception(f"{handler.__name__} failed: {e}")
                return web.json_response(
                    {"error": str(e), "message": failure_message},
                    status=500,
                )

        return wrapper

    return decorator


class JiraProxyServer:
    """HTTP proxy between browser clients and JIRA Cloud."""

    def __init__(
        self,
        config: ProxyConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the proxy server.

        Args:
            config: Loaded configuration. Defaults are used when omitted.
            transport: Optional httpx transport for upstream calls.
        """
        self.config = config or ProxyConfig()
        self.resolver = CredentialResolver(self.config.service)
        self._transport = transport
        self.app = web.Application(
            middlewares=[
                cors_middleware(self.config.cors.allowed_origins),
                error_middleware,
                request_logger,
            ]
        )
        self._setup_routes()

    def route_table(self) -> list[tuple[str, str, Handler]]:
        """Return the ordered (method, path, handler) routes.

        Specific handlers come first. The passthrough entry is last and is
        only reached when no specific route matches both path and method,
        so e.g. GET /jira/get-tasks is forwarded to JIRA as-is.
        """
        return [
            (hdrs.METH_GET, "/health", self.handle_health),
            (hdrs.METH_POST, f"{JIRA_PREFIX}/test-connection", self.handle_test_connection),
            (hdrs.METH_POST, f"{JIRA_PREFIX}/get-tasks", self.handle_get_tasks),
            (hdrs.METH_POST, f"{JIRA_PREFIX}/get-projects", self.handle_get_projects),
            (hdrs.METH_POST, f"{JIRA_PREFIX}/add-worklog", self.handle_add_worklog),
            (hdrs.METH_POST, f"{JIRA_PREFIX}/get-worklogs", self.handle_get_worklogs),
            (hdrs.METH_ANY, f"{JIRA_PREFIX}/{{tail:.*}}", self.handle_passthrough),
        ]

    def _setup_routes(self) -> None:
        """Register the route table in order."""
        for method, path, handler in self.route_table():
            self.app.router.add_route(method, path, handler)

    def _client(self, credentials: TenantCredentials) -> JiraClient:
        """Create a request-scoped JIRA client."""
        return JiraClient(
            credentials,
            user_agent=self.config.upstream.user_agent,
            timeout=self.config.upstream.timeout,
            transport=self._transport,
        )

    def _resolve(
        self, request: web.Request, body: Mapping[str, Any]
    ) -> TenantCredentials | None:
        """Resolve credentials for a request, or None when any is missing."""
        try:
            return self.resolver.resolve(body, request.headers, request.query)
        except MissingCredentialsError as e:
            logger.info(f"Rejected {request.method} {request.path}: {e}")
            return None

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        GET /health
        Returns: {"status": "ok", "message": "...", "timestamp": "..."}
        """
        return web.json_response({
            "status": "ok",
            "message": "JIRA proxy server is running",
            "timestamp": datetime.now(UTC).isoformat(),
        })

    @upstream_guard("Failed to connect to JIRA")
    async def handle_test_connection(self, request: web.Request) -> web.Response:
        """Verify the credentials against JIRA.

        POST /jira/test-connection
        Returns: {"status": "ok", "user": {...}, "message": "Connection successful"}
        """
        body = parse_json_body(await request.read())
        credentials = self._resolve(request, body)
        if credentials is None:
            return missing_credentials_response()

        response = await self._client(credentials).get_myself()
        if not response.is_success:
            return web.json_response(
                {
                    "error": response.text,
                    "status": response.status_code,
                    "statusText": response.reason_phrase,
                },
                status=response.status_code,
            )

        data = response.json()
        return web.json_response({
            "status": "ok",
            "user": {
                "accountId": data.get("accountId"),
                "displayName": data.get("displayName"),
                "emailAddress": data.get("emailAddress"),
                "active": data.get("active"),
            },
            "message": "Connection successful",
        })

    @upstream_guard("Failed to fetch JIRA tasks")
    async def handle_get_tasks(self, request: web.Request) -> web.Response:
        """Search issues, by default the caller's open ones.

        POST /jira/get-tasks  {..., "jql": "..."}
        Returns: {"issues": [...], "total": n, "maxResults": n, "nextPageToken": "...",
                  plus "startAt" and "isLast" when JIRA sends them}
        """
        body = parse_json_body(await request.read())
        credentials = self._resolve(request, body)
        if credentials is None:
            return missing_credentials_response()

        response = await self._client(credentials).search_issues(body.get("jql"))
        if not response.is_success:
            return web.json_response(
                {"error": response.text, "status": response.status_code},
                status=response.status_code,
            )

        data = response.json()
        return web.json_response({
            "issues": data.get("issues"),
            "total": data.get("total"),
            "maxResults": data.get("maxResults"),
            "nextPageToken": data.get("nextPageToken"),
            **{key: data[key] for key in PAGINATION_EXTRAS if key in data},
        })

    @upstream_guard("Failed to fetch JIRA projects")
    async def handle_get_projects(self, request: web.Request) -> web.Response:
        """List projects, reduced to id/key/name/projectTypeKey/simplified.

        POST /jira/get-projects
        Returns: {"projects": [...]}
        """
        body = parse_json_body(await request.read())
        credentials = self._resolve(request, body)
        if credentials is None:
            return missing_credentials_response()

        response = await self._client(credentials).search_projects()
        if not response.is_success:
            return web.json_response(
                {"error": response.text, "status": response.status_code},
                status=response.status_code,
            )

        data = response.json()
        projects = [
            {
                "id": project.get("id"),
                "key": project.get("key"),
                "name": project.get("name"),
                "projectTypeKey": project.get("projectTypeKey"),
                "simplified": project.get("simplified"),
            }
            for project in data.get("values") or []
        ]
        logger.debug(f"Processed {len(projects)} JIRA projects")
        return web.json_response({"projects": projects})

    @upstream_guard("Failed to add worklog to JIRA")
    async def handle_add_worklog(self, request: web.Request) -> web.Response:
        """Log time on an issue.

        POST /jira/add-worklog  {..., "issueKey": "AB-1", "timeSpent": "2h 30m", "comment": "..."}
        Returns: {"status": "ok", "message": "...", "worklog": {...}}
        """
        body = parse_json_body(await request.read())
        credentials = self._resolve(request, body)
        if credentials is None:
            return missing_credentials_response()

        issue_key = body.get("issueKey")
        time_spent = body.get("timeSpent")
        if not issue_key or not time_spent:
            return json_error(400, "Missing required fields", "Provide issueKey and timeSpent")

        if not isinstance(time_spent, str) or not is_valid_time_spent(time_spent):
            return json_error(400, "Invalid time format", TIME_FORMAT_HINT)

        comment = body.get("comment")
        payload = build_worklog_payload(
            time_spent.strip(), comment if isinstance(comment, str) else None
        )

        response = await self._client(credentials).add_worklog(issue_key, payload)
        if not response.is_success:
            error, details = parse_error_body(response.text)
            return web.json_response(
                {"error": error, "status": response.status_code, "details": details},
                status=response.status_code,
            )

        return web.json_response({
            "status": "ok",
            "message": "Worklog added successfully",
            "worklog": response.json(),
        })

    @upstream_guard("Failed to get worklogs from JIRA")
    async def handle_get_worklogs(self, request: web.Request) -> web.Response:
        """Fetch the worklogs of an issue.

        POST /jira/get-worklogs  {..., "issueKey": "AB-1"}
        Returns: {"status": "ok", "message": "...", "worklogs": [...], "total": n}
        """
        body = parse_json_body(await request.read())
        credentials = self._resolve(request, body)
        if credentials is None:
            return missing_credentials_response()

        issue_key = body.get("issueKey")
        if not issue_key:
            return json_error(400, "Missing required fields", "Provide issueKey")

        response = await self._client(credentials).get_worklogs(issue_key)
        if not response.is_success:
            return web.json_response(
                {"error": response.text, "status": response.status_code},
                status=response.status_code,
            )

        data = response.json()
        return web.json_response({
            "status": "ok",
            "message": "Worklogs retrieved successfully",
            "worklogs": data.get("worklogs") or [],
            "total": data.get("total") or 0,
        })

    @upstream_guard("Failed to proxy request to JIRA")
    async def handle_passthrough(self, request: web.Request) -> web.StreamResponse:
        """Forward any other /jira/* request to the tenant.

        ANY /jira/{path}
        Returns: the upstream status and body, re-encoded when JSON.
        """
        raw_body = await request.read()
        body_data = parse_json_body(raw_body)
        credentials = self._resolve(request, body_data)
        if credentials is None:
            return missing_credentials_response()

        used = self.resolver.query_supplied_keys(body_data, request.headers, request.query)
        path = rewrite_passthrough_path(request.rel_url.raw_path, request.query, drop=used)
        body = None if request.method in READ_ONLY_METHODS else (raw_body or b"{}")

        response = await self._client(credentials).forward(
            request.method,
            path,
            accept=request.headers.get(hdrs.ACCEPT),
            content_type=request.headers.get(hdrs.CONTENT_TYPE),
            body=body,
        )

        content_type = response.headers.get("content-type", "")
        if not response.content:
            return web.Response(status=response.status_code)
        if "application/json" in content_type:
            return web.json_response(response.json(), status=response.status_code)
        return web.Response(
            body=response.content,
            status=response.status_code,
            headers={hdrs.CONTENT_TYPE: content_type} if content_type else None,
        )


async def run_server(config: ProxyConfig) -> None:
    """Run the proxy until SIGINT/SIGTERM.

    Args:
        config: Loaded configuration.
    """
    server = JiraProxyServer(config)

    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    runner = web.AppRunner(server.app)
    await runner.setup()

    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()

    base_url = f"http://{config.server.host}:{config.server.port}"
    print(f"JIRA proxy server running on {base_url}")
    print(f"Health check: {base_url}/health")
    print("Press Ctrl+C to stop...")
    logger.info(f"Listening on {base_url}")

    try:
        await shutdown_event.wait()
    except asyncio.CancelledError:
        pass
    finally:
        print("\nShutting down...")
        await runner.cleanup()
        logger.info("Server stopped cleanly")
