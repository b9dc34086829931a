"""Tests for worklog payload helpers."""

import pytest

from jiraproxy.jira.worklog import (
    adf_document,
    build_worklog_payload,
    is_valid_time_spent,
    parse_error_body,
)


@pytest.mark.parametrize(
    "value",
    ["2h 30m", "1d", "45m", "1w", "1w 2d 3h 4m", "3d 4h", "  2h  ", "10h 5m"],
)
def test_time_spent_accepts(value):
    """Test well-formed time-spent strings."""
    assert is_valid_time_spent(value)


@pytest.mark.parametrize(
    "value",
    ["2x", "abc", "30m 2h", "2h 1d", "", "   ", None, "2", "h", "2h 2h", "2h30m", "-1h", "1.5h"],
)
def test_time_spent_rejects(value):
    """Test malformed, unordered or empty time-spent strings."""
    assert not is_valid_time_spent(value)


@pytest.mark.parametrize("value", ["\u0662h", "\uff12h 30m", "1d \u0663m"])
def test_time_spent_rejects_non_ascii_digits(value):
    """Test that only ASCII digits count as amounts."""
    assert not is_valid_time_spent(value)


def test_adf_document_shape():
    """Test the single-paragraph ADF envelope."""
    assert adf_document("Fixed the login bug") == {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": "Fixed the login bug"}],
            }
        ],
    }


def test_payload_without_comment():
    """Test payload with time only."""
    assert build_worklog_payload("2h") == {"timeSpent": "2h"}


def test_payload_drops_blank_comment():
    """Test that whitespace-only comments are not sent."""
    assert build_worklog_payload("2h", "   ") == {"timeSpent": "2h"}


def test_payload_trims_comment():
    """Test that comments are trimmed and wrapped in ADF."""
    payload = build_worklog_payload("1d", "  code review  ")

    assert payload["timeSpent"] == "1d"
    assert payload["comment"]["content"][0]["content"][0]["text"] == "code review"


def test_parse_error_body_error_messages():
    """Test extracting JIRA's errorMessages list."""
    error, details = parse_error_body(
        '{"errorMessages": ["Issue does not exist"], "errors": {}}'
    )

    assert error == ["Issue does not exist"]
    assert details == {"errorMessages": ["Issue does not exist"], "errors": {}}


def test_parse_error_body_prefers_error_field():
    """Test that an explicit error field wins over errorMessages."""
    error, _ = parse_error_body('{"error": "bad", "errorMessages": ["worse"]}')
    assert error == "bad"


def test_parse_error_body_falls_back_to_text():
    """Test non-JSON bodies."""
    error, details = parse_error_body("<html>Bad Gateway</html>")

    assert error == "<html>Bad Gateway</html>"
    assert details == {"error": "<html>Bad Gateway</html>"}


def test_parse_error_body_without_messages():
    """Test JSON without error or errorMessages falls back to raw text."""
    text = '{"errors": {"timeSpent": "Invalid"}}'
    error, details = parse_error_body(text)

    assert error == text
    assert details == {"errors": {"timeSpent": "Invalid"}}
