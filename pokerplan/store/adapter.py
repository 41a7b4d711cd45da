"""
Session Store Adapter - The boundary to the shared document store.

The store is the single source of truth. Clients never coordinate
with each other directly; they:
- subscribe to a document path and receive full snapshots
- create a document once (full write)
- update a document with field-level partial patches

Semantics the rest of the system relies on:
- every successful write is delivered to every subscriber of the path
- snapshots for one subscription arrive in write order
- concurrent updates to different fields never conflict;
  updates to the same field resolve last-writer-wins
"""

from __future__ import annotations
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable


SESSIONS_ROOT = "sessions"


def session_path(session_id: str) -> str:
    """Document path of a session."""
    return f"{SESSIONS_ROOT}/{session_id}"


class StoreWriteError(Exception):
    """Raised when the store rejects a create or update."""

    def __init__(self, message: str, path: str | None = None, code: str | None = None):
        super().__init__(message)
        self.path = path
        self.code = code


class SnapshotKind(Enum):
    """What a subscription delivered."""
    SNAPSHOT = "snapshot"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class SnapshotEvent:
    """
    One delivery on a subscription.

    SNAPSHOT carries the full document. NOT_FOUND means nothing
    exists at the path (yet, or anymore). ERROR means the
    subscription itself failed.
    """
    kind: SnapshotKind
    path: str
    document: Any = None
    error: str | None = None

    @classmethod
    def snapshot(cls, path: str, document: Any) -> SnapshotEvent:
        return cls(kind=SnapshotKind.SNAPSHOT, path=path, document=document)

    @classmethod
    def not_found(cls, path: str) -> SnapshotEvent:
        return cls(kind=SnapshotKind.NOT_FOUND, path=path)

    @classmethod
    def failed(cls, path: str, error: str) -> SnapshotEvent:
        return cls(kind=SnapshotKind.ERROR, path=path, error=error)

    def to_message(self) -> dict[str, Any]:
        """JSON-friendly form used by the WebSocket and SSE channels."""
        message: dict[str, Any] = {"type": self.kind.value, "path": self.path}
        if self.kind == SnapshotKind.SNAPSHOT:
            message["document"] = self.document
        if self.error is not None:
            message["error"] = self.error
        return message

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> SnapshotEvent:
        try:
            kind = SnapshotKind(message.get("type"))
        except ValueError:
            raise ValueError(f"Unknown snapshot message type: {message.get('type')!r}")
        return cls(
            kind=kind,
            path=message.get("path", ""),
            document=message.get("document"),
            error=message.get("error"),
        )

    def to_sse(self) -> str:
        """Server-Sent-Events frame."""
        return f"event: {self.kind.value}\ndata: {json.dumps(self.to_message())}\n\n"


Listener = Callable[[SnapshotEvent], None]
Unsubscribe = Callable[[], None]


class SessionStore(ABC):
    """
    Abstract document store.

    subscribe() is synchronous and returns the teardown callable.
    Writes are coroutines; callers may fire them without awaiting
    for correctness, since confirmation arrives via subscriptions.
    """

    @abstractmethod
    def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        """Start delivering snapshots of path to listener."""
        pass

    @abstractmethod
    async def create(self, path: str, document: dict[str, Any]) -> None:
        """Write a full document. Raises StoreWriteError."""
        pass

    @abstractmethod
    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Merge sub-path -> value fields atomically. Raises StoreWriteError."""
        pass
