"""
Store Module - Shared session documents.

The adapter interface plus two implementations:
- InMemorySessionStore: the store itself, hosted by the API service
- HttpSessionStore: a client for that service
"""

from .adapter import (
    SessionStore,
    SnapshotEvent,
    SnapshotKind,
    StoreWriteError,
    Listener,
    Unsubscribe,
    session_path,
)
from .memory import InMemorySessionStore
from .http import HttpSessionStore

__all__ = [
    "SessionStore",
    "SnapshotEvent",
    "SnapshotKind",
    "StoreWriteError",
    "Listener",
    "Unsubscribe",
    "session_path",
    "InMemorySessionStore",
    "HttpSessionStore",
]
