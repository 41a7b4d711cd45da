"""
Share Links - The addressable entry point of a session.

A session is shared as a link carrying its id in the "session"
query parameter. On start-up the link is parsed once to decide
between joining an existing session and creating a new one.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

SESSION_PARAM = "session"


class EntryMode(Enum):
    CREATE = "create"
    JOIN = "join"


@dataclass(frozen=True)
class Entry:
    mode: EntryMode
    session_id: str | None = None


def parse_entry(url: str | None) -> Entry:
    """
    Decide the entry mode from a URL or a bare query string.

    A non-blank session parameter means JOIN; anything else is CREATE.
    """
    if not url:
        return Entry(mode=EntryMode.CREATE)

    query = urlsplit(url).query if ("?" in url or "://" in url) else url
    values = parse_qs(query.lstrip("?")).get(SESSION_PARAM, [])
    session_id = values[0].strip() if values else ""
    if not session_id:
        return Entry(mode=EntryMode.CREATE)
    return Entry(mode=EntryMode.JOIN, session_id=session_id)


def build_share_link(base_url: str, session_id: str) -> str:
    """Link that opens session_id, keeping any other query parameters."""
    parts = urlsplit(base_url)
    params = [
        (key, value)
        for key, values in parse_qs(parts.query, keep_blank_values=True).items()
        if key != SESSION_PARAM
        for value in values
    ]
    params.append((SESSION_PARAM, session_id))
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(params), parts.fragment))
