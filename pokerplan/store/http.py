"""
HTTP Session Store - Talks to the store service over HTTP.

    PUT   /api/v1/store/{path}          create
    PATCH /api/v1/store/{path}          field-level update
    GET   /api/v1/store/{path}/events   Server-Sent-Events subscription

Each subscription runs as a background task reading the event
stream; unsubscribing cancels the task.
"""

from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, AsyncIterator

import httpx

from .adapter import Listener, SessionStore, SnapshotEvent, StoreWriteError, Unsubscribe

logger = logging.getLogger(__name__)

STORE_PREFIX = "/api/v1/store"


async def iter_sse_messages(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """
    Parse an SSE line stream into JSON messages.

    Only "data:" fields are used; comments and event names are ignored
    since every message carries its own type.
    """
    data_lines: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
            continue
        if line == "" and data_lines:
            payload = "\n".join(data_lines)
            data_lines = []
            try:
                message = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("store: skipping malformed SSE data: %.100s", payload)
                continue
            if isinstance(message, dict):
                yield message
    if data_lines:
        try:
            message = json.loads("\n".join(data_lines))
        except json.JSONDecodeError:
            return
        if isinstance(message, dict):
            yield message


class HttpSessionStore(SessionStore):
    """
    Remote store client.

    Usage:
        async with HttpSessionStore("http://127.0.0.1:8000") as store:
            await store.create("sessions/abc", document)
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self._tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> HttpSessionStore:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._client.aclose()

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(self, path: str, document: dict[str, Any]) -> None:
        await self._write("PUT", path, {"document": document})

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self._write("PATCH", path, {"fields": fields})

    async def get(self, path: str) -> dict[str, Any] | None:
        """One-shot read of a document."""
        try:
            response = await self._client.get(self._url(path))
        except httpx.HTTPError as e:
            raise StoreWriteError(f"Store unreachable: {e}", path=path, code="TRANSPORT_ERROR") from e
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json().get("document")

    async def _write(self, method: str, path: str, body: dict[str, Any]) -> None:
        try:
            response = await self._client.request(method, self._url(path), json=body)
        except httpx.HTTPError as e:
            raise StoreWriteError(f"Store unreachable: {e}", path=path, code="TRANSPORT_ERROR") from e

        if response.status_code >= 400:
            code = None
            message = f"Store returned HTTP {response.status_code}"
            try:
                error = response.json()
                code = error.get("error_code")
                message = error.get("error", message)
            except ValueError:
                pass
            raise StoreWriteError(message, path=path, code=code)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, path: str, listener: Listener) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._stream(path, listener))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def unsubscribe() -> None:
            task.cancel()

        return unsubscribe

    async def _stream(self, path: str, listener: Listener) -> None:
        url = self._url(path) + "/events"
        try:
            async with self._client.stream("GET", url, timeout=None) as response:
                if response.status_code != 200:
                    listener(SnapshotEvent.failed(path, f"Subscription failed: HTTP {response.status_code}"))
                    return
                async for message in iter_sse_messages(response.aiter_lines()):
                    try:
                        event = SnapshotEvent.from_message(message)
                    except ValueError as e:
                        logger.warning("store: %s", e)
                        continue
                    listener(event)
        except httpx.HTTPError as e:
            logger.warning("store: subscription to %s failed: %s", path, e)
            listener(SnapshotEvent.failed(path, str(e)))
            return

        listener(SnapshotEvent.failed(path, "Subscription stream closed"))

    def _url(self, path: str) -> str:
        return f"{STORE_PREFIX}/{path.strip('/')}"
