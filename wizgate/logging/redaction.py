"""Helpers that make untrusted strings safe to put in log records."""

from typing import Optional
from urllib.parse import urlsplit, urlunsplit


def sanitize_for_log(text: Optional[str]) -> Optional[str]:
    """Escape control characters so a value cannot forge extra log lines.

    Replaces newlines, carriage returns, tabs, null bytes and ANSI escapes.
    """
    if text is None:
        return None
    return (
        text
        .replace("\x00", "\\x00")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x1b", "\\x1b")
    )


def redact_url(url: str) -> str:
    """Drop user info, query string and fragment from *url*.

    Pre-signed download links carry credentials in the query string.
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return "<unparseable url>"
    netloc = parts.hostname or ""
    if port:
        netloc = f"{netloc}:{port}"
    return sanitize_for_log(urlunsplit((parts.scheme, netloc, parts.path, "", "")))
