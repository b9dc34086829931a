"""Tenant credential resolution.

Every proxied request carries the JIRA tenant it should be forwarded to.
Each field is looked up in the request body, then the custom x-jira-*
headers, then the query string. The first non-empty value wins.
"""

import base64
import hmac
import re
from dataclasses import dataclass
from typing import Any, Mapping

from .config import ServiceTenant

# field -> (body key, header name, query key)
CREDENTIAL_SOURCES = {
    "server_url": ("serverUrl", "x-jira-server", "serverUrl"),
    "username": ("username", "x-jira-user", "username"),
    "api_token": ("apiToken", "x-jira-token", "apiToken"),
}

# Never forwarded upstream, even when the token came from a header
TOKEN_QUERY_KEY = "apiToken"

CONSUMER_HEADER = "x-jira-consumer"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


class MissingCredentialsError(Exception):
    """Raised when serverUrl, username or apiToken cannot be resolved."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing credentials: {', '.join(missing)}")


@dataclass(frozen=True)
class TenantCredentials:
    """Credentials for one JIRA tenant, valid for a single request."""

    server_url: str
    username: str
    api_token: str

    def basic_auth_header(self) -> str:
        """Return the Authorization header value for these credentials."""
        encoded = base64.b64encode(f"{self.username}:{self.api_token}".encode()).decode()
        return f"Basic {encoded}"

    def url(self, path: str) -> str:
        """Join an API path onto the tenant base URL."""
        return f"{self.server_url}{path}"


def normalize_server_url(raw: Any) -> str | None:
    """Normalize a JIRA base URL.

    Accepts "your.atlassian.net" or "https://your.atlassian.net/" and returns
    "https://your.atlassian.net". Returns None for empty input.
    """
    if not raw:
        return None
    url = str(raw).strip()
    if not url:
        return None
    if not _SCHEME_RE.match(url):
        url = f"https://{url}"
    return url.rstrip("/")


def _first_value(*candidates: Any) -> str:
    for value in candidates:
        if value:
            return str(value)
    return ""


class CredentialResolver:
    """Resolve TenantCredentials from request body, headers and query string."""

    def __init__(self, service: ServiceTenant | None = None):
        """Initialize the resolver.

        Args:
            service: Optional service tenant used in place of the request's
                credentials for the designated internal consumer.
        """
        self._service = service or ServiceTenant()

    def is_service_consumer(self, headers: Mapping[str, str]) -> bool:
        """Check whether the caller identified itself as the internal consumer."""
        if not self._service.enabled:
            return False
        presented = headers.get(CONSUMER_HEADER, "")
        if not presented:
            return False
        return hmac.compare_digest(presented.encode(), self._service.consumer_id.encode())

    def request_values(
        self,
        body: Mapping[str, Any] | None,
        headers: Mapping[str, str],
        query: Mapping[str, str],
    ) -> dict[str, str]:
        """Collect the raw credential fields a request carries, body first."""
        body = body or {}
        return {
            name: _first_value(body.get(body_key), headers.get(header), query.get(query_key))
            for name, (body_key, header, query_key) in CREDENTIAL_SOURCES.items()
        }

    def query_supplied_keys(
        self,
        body: Mapping[str, Any] | None,
        headers: Mapping[str, str],
        query: Mapping[str, str],
    ) -> frozenset[str]:
        """Return the query parameters that supplied a credential field.

        A query parameter only counts when neither the body nor the headers
        already gave that field.
        """
        body = body or {}
        return frozenset(
            query_key
            for body_key, header, query_key in CREDENTIAL_SOURCES.values()
            if query.get(query_key) and not (body.get(body_key) or headers.get(header))
        )

    def resolve(
        self,
        body: Mapping[str, Any] | None,
        headers: Mapping[str, str],
        query: Mapping[str, str],
    ) -> TenantCredentials:
        """Resolve credentials with body > headers > query precedence.

        The designated internal consumer that leaves out any field gets the
        whole service tenant. Service fields are never combined with fields
        taken from the request.

        Args:
            body: Parsed JSON request body (may be None).
            headers: Request headers (case-insensitive mapping).
            query: Query string parameters.

        Returns:
            The resolved, normalized credentials.

        Raises:
            MissingCredentialsError: If any of the three fields is empty.
        """
        values = self.request_values(body, headers, query)

        if not all(values.values()) and self.is_service_consumer(headers):
            values = {
                "server_url": self._service.server_url,
                "username": self._service.username,
                "api_token": self._service.api_token,
            }

        values["server_url"] = normalize_server_url(values["server_url"]) or ""

        missing = [name for name, value in values.items() if not value]
        if missing:
            raise MissingCredentialsError(missing)

        return TenantCredentials(**values)
