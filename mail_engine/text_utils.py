import re
from datetime import datetime
from typing import Optional

from bs4 import BeautifulSoup


# Compiled regex patterns for performance
_WHITESPACE_NEWLINE_PATTERN = re.compile(r"\s*\n\s*")
_MULTIPLE_SPACES_PATTERN = re.compile(r"[ \t\r\f\v]+")


def html_to_text(html: str) -> str:
    """Convert HTML (or entity-escaped text) to plain text.

    Strategy:
    1) Try html5lib (best fidelity)
    2) Fallback to built-in 'html.parser'
    Always return normalized plain text.
    """
    raw = html or ""
    if not raw.strip():
        return ""
    try:
        soup = BeautifulSoup(raw, "html5lib")
    except ValueError:
        # html5lib missing a tree builder; the stdlib parser is always present
        soup = BeautifulSoup(raw, "html.parser")
    text = soup.get_text("\n", strip=True)

    # Normalize whitespace
    text = _WHITESPACE_NEWLINE_PATTERN.sub(" ", text)
    text = _MULTIPLE_SPACES_PATTERN.sub(" ", text)
    return text.strip()


def iso_to_rfc2822(value: Optional[str]) -> str:
    """Render an ISO 8601 timestamp (Graph style) like an RFC 2822 Date header."""
    raw = (value or "").strip()
    if not raw:
        return ""
    # Parse ISO format: 2025-10-03T19:19:31Z
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return raw
    if dt.tzinfo is None:
        return dt.strftime("%a, %d %b %Y %H:%M:%S")
    return dt.strftime("%a, %d %b %Y %H:%M:%S %z")
