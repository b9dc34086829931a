"""jira-proxy - credential-forwarding HTTP proxy for JIRA Cloud."""

__version__ = "1.0.0"
