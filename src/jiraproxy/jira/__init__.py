"""JIRA Cloud REST API access for the proxy."""

from .client import DEFAULT_JQL, JiraClient
from .worklog import build_worklog_payload, is_valid_time_spent, parse_error_body

__all__ = [
    "DEFAULT_JQL",
    "JiraClient",
    "build_worklog_payload",
    "is_valid_time_spent",
    "parse_error_body",
]
