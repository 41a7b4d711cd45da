"""
In-Memory Session Store - Reference implementation of the store.

Holds documents in a dict and pushes full snapshots to subscribers
after every write. Runs inside one event loop: each write is applied
and broadcast before control returns, so a write is atomic with
respect to every other write and every subscriber.

Lifecycle:
- documents are created once and then only patched
- a document untouched for longer than ttl_seconds is dropped by
  purge_expired(); its subscribers receive not_found
"""

from __future__ import annotations
import copy
import logging
import time
from typing import Any, Callable

from ..engine_core.reducer import merge_update
from .adapter import Listener, SessionStore, SnapshotEvent, StoreWriteError, Unsubscribe

logger = logging.getLogger(__name__)


class InMemorySessionStore(SessionStore):
    """
    Dict-backed document store with per-field merge and subscriptions.

    Usage:
        store = InMemorySessionStore(ttl_seconds=3600)
        unsubscribe = store.subscribe("sessions/abc", print)
        await store.create("sessions/abc", {...})
        await store.update("sessions/abc", {"revealed": True})
        unsubscribe()
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._documents: dict[str, dict[str, Any]] = {}
        self._last_write: dict[str, float] = {}
        self._listeners: dict[str, list[Listener]] = {}

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, path: str) -> dict[str, Any] | None:
        """Copy of the document at path, or None."""
        document = self._documents.get(path)
        return copy.deepcopy(document) if document is not None else None

    def exists(self, path: str) -> bool:
        return path in self._documents

    def list_paths(self) -> list[str]:
        return list(self._documents)

    def subscriber_count(self, path: str) -> int:
        return len(self._listeners.get(path, []))

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        """
        Register a listener and immediately deliver the current state.
        """
        self._listeners.setdefault(path, []).append(listener)
        self._deliver(listener, self._current_event(path))

        def unsubscribe() -> None:
            listeners = self._listeners.get(path)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[path]

        return unsubscribe

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, path: str, document: dict[str, Any]) -> None:
        if not isinstance(document, dict):
            raise StoreWriteError("Document must be a mapping", path=path, code="INVALID_DOCUMENT")
        if path in self._documents:
            raise StoreWriteError(f"Document {path} already exists", path=path, code="ALREADY_EXISTS")

        self._documents[path] = copy.deepcopy(document)
        self._last_write[path] = self._clock()
        logger.info("store: created %s", path)
        self._broadcast(path)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        if path not in self._documents:
            raise StoreWriteError(f"Document {path} not found", path=path, code="NOT_FOUND")
        if not fields:
            return

        try:
            merged = merge_update(self._documents[path], fields)
        except ValueError as e:
            raise StoreWriteError(str(e), path=path, code="INVALID_PATH") from e

        self._documents[path] = merged
        self._last_write[path] = self._clock()
        logger.debug("store: updated %s (%d fields)", path, len(fields))
        self._broadcast(path)

    def delete(self, path: str) -> bool:
        """Remove a document; subscribers see not_found."""
        if self._documents.pop(path, None) is None:
            return False
        self._last_write.pop(path, None)
        self._broadcast(path)
        return True

    def purge_expired(self, now: float | None = None) -> list[str]:
        """
        Drop documents idle for longer than the TTL.

        Called periodically to free memory. Returns the purged paths.
        """
        if not self.ttl_seconds:
            return []
        current_time = self._clock() if now is None else now
        expired = [
            path for path, written_at in self._last_write.items()
            if current_time - written_at > self.ttl_seconds
        ]
        for path in expired:
            self.delete(path)
        if expired:
            logger.info("store: purged %d expired document(s)", len(expired))
        return expired

    # =========================================================================
    # Delivery
    # =========================================================================

    def _current_event(self, path: str) -> SnapshotEvent:
        document = self._documents.get(path)
        if document is None:
            return SnapshotEvent.not_found(path)
        return SnapshotEvent.snapshot(path, copy.deepcopy(document))

    def _broadcast(self, path: str) -> None:
        # Copy: listeners may unsubscribe while being notified.
        for listener in list(self._listeners.get(path, [])):
            self._deliver(listener, self._current_event(path))

    def _deliver(self, listener: Listener, event: SnapshotEvent) -> None:
        try:
            listener(event)
        except Exception:
            logger.exception("store: subscriber for %s raised", event.path)
