"""Worklog payload helpers.

JIRA accepts time spent as "<n>w <n>d <n>h <n>m" with any subset of units,
and worklog comments only in Atlassian Document Format.
"""

import json
import re
from typing import Any

# Units in the order JIRA writes them, each token followed by whitespace or the end
_TIME_SPENT_RE = re.compile(
    r"^(?=\d)"
    r"(?:\d+w(?:\s+|$))?"
    r"(?:\d+d(?:\s+|$))?"
    r"(?:\d+h(?:\s+|$))?"
    r"(?:\d+m)?$",
    re.ASCII,
)

TIME_FORMAT_HINT = "Time format should be like: 2h 30m, 1d, 45m (w=week, d=day, h=hour, m=minute)"


def is_valid_time_spent(value: str | None) -> bool:
    """Check a time-spent string such as "2h 30m" or "1d".

    Units must appear in week, day, hour, minute order, each at most once.
    """
    if not value:
        return False
    return bool(_TIME_SPENT_RE.match(value.strip()))


def adf_document(text: str) -> dict[str, Any]:
    """Wrap plain text in a single-paragraph Atlassian Document Format document."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [
                    {
                        "type": "text",
                        "text": text,
                    }
                ],
            }
        ],
    }


def build_worklog_payload(time_spent: str, comment: str | None = None) -> dict[str, Any]:
    """Build the body for POST /rest/api/3/issue/{key}/worklog.

    Args:
        time_spent: Validated time-spent string.
        comment: Optional plain-text comment; blank comments are dropped.

    Returns:
        The worklog payload.
    """
    payload: dict[str, Any] = {"timeSpent": time_spent}
    if comment and comment.strip():
        payload["comment"] = adf_document(comment.strip())
    return payload


def parse_error_body(text: str) -> tuple[Any, dict[str, Any]]:
    """Extract an error summary and details from a JIRA error response.

    JIRA usually answers with {"errorMessages": [...], "errors": {...}}, but
    gateways in front of it may return plain text or HTML.

    Args:
        text: Raw response body.

    Returns:
        A tuple of (error, details).
    """
    try:
        details = json.loads(text)
    except ValueError:
        details = None
    if not isinstance(details, dict):
        details = {"error": text}

    error = details.get("error") or details.get("errorMessages") or text
    return error, details
