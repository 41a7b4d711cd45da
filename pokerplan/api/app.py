"""
FastAPI Application - The shared session store over HTTP.

Endpoints:
    PUT    /api/v1/store/sessions/{id}         Create session document
    PATCH  /api/v1/store/sessions/{id}         Field-level update
    GET    /api/v1/store/sessions/{id}         Current document
    GET    /api/v1/store/sessions/{id}/events  Server-Sent-Events subscription
    WS     /api/v1/store/sessions/{id}/ws      WebSocket subscription
    GET    /api/v1/sessions                    List stored sessions
    GET    /api/v1/sessions/{id}/tally         Decoded session and tally
    GET    /health                             Health check

Synchronization model:
    Clients never talk to each other. Each one writes partial updates
    here and follows the document through a subscription. Every
    successful write is pushed to every subscriber as a full snapshot,
    including the writer itself.

All responses are JSON with explicit Pydantic schemas.
"""

from __future__ import annotations
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .. import __version__
from ..config import Settings, get_settings
from ..store.adapter import SnapshotEvent, StoreWriteError, session_path
from ..store.memory import InMemorySessionStore
from .schemas import (
    CreateDocumentRequest,
    DocumentResponse,
    ErrorCode,
    ErrorResponse,
    HealthResponse,
    SessionListResponse,
    TallyResponse,
    UpdateDocumentRequest,
    WriteResponse,
)
from .service import APIService, is_valid_session_id

logger = logging.getLogger(__name__)

SSE_HEARTBEAT_SECONDS = 15.0
PURGE_INTERVAL_SECONDS = 60.0

_STORE_ERROR_CODES = {
    "NOT_FOUND": (ErrorCode.SESSION_NOT_FOUND, 404),
    "ALREADY_EXISTS": (ErrorCode.ALREADY_EXISTS, 409),
    "INVALID_PATH": (ErrorCode.INVALID_PATH, 400),
    "INVALID_DOCUMENT": (ErrorCode.INVALID_DOCUMENT, 400),
}


def create_app(service: Optional[APIService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (creates new if not provided)
        settings: Optional Settings (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    settings = settings or get_settings()
    api_service = service or APIService(
        store=InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds or None),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        purge_task = None
        if api_service.store.ttl_seconds:
            purge_task = asyncio.create_task(_purge_loop(api_service))
        try:
            yield
        finally:
            if purge_task is not None:
                purge_task.cancel()
                try:
                    await purge_task
                except asyncio.CancelledError:
                    pass

    app = FastAPI(
        title="Planning Poker Session Store",
        description="""
Shared session documents with field-level updates and live subscriptions.

## Write discipline

A session document is created once with `PUT`. Every later change is a
`PATCH` of individual field paths, e.g. `participants/{id}/vote`, so
concurrent participants never overwrite each other's fields.

## Error Codes

| Code | Description |
|------|-------------|
| `SESSION_NOT_FOUND` | Session does not exist |
| `ALREADY_EXISTS` | Session id already taken |
| `INVALID_PATH` | Malformed update path |
| `INVALID_DOCUMENT` | Document is not a mapping |
| `LOAD_FAILED` | Stored document is not a valid session |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def store_error_response(e: StoreWriteError) -> JSONResponse:
        error_code, status_code = _STORE_ERROR_CODES.get(e.code or "", (ErrorCode.INTERNAL_ERROR, 500))
        return make_error_response(error_code, str(e), status_code=status_code)

    def invalid_session_id(session_id: str) -> JSONResponse:
        return make_error_response(
            ErrorCode.VALIDATION_ERROR,
            f"Invalid session id: {session_id!r}",
        )

    # =========================================================================
    # Store Endpoints
    # =========================================================================

    @app.put(
        "/api/v1/store/sessions/{session_id}",
        response_model=WriteResponse,
        status_code=201,
        responses={
            400: {"model": ErrorResponse},
            409: {"model": ErrorResponse, "description": "Session already exists"},
        },
        tags=["Store"],
        summary="Create a session document",
    )
    async def create_document(
        session_id: str,
        body: CreateDocumentRequest,
    ) -> Union[WriteResponse, JSONResponse]:
        """Write the full initial document. Only allowed once per session."""
        if not is_valid_session_id(session_id):
            return invalid_session_id(session_id)
        try:
            path = await api_service.create_session_document(session_id, body.document)
        except StoreWriteError as e:
            return store_error_response(e)
        return WriteResponse(success=True, path=path)

    @app.patch(
        "/api/v1/store/sessions/{session_id}",
        response_model=WriteResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Malformed field path"},
            404: {"model": ErrorResponse, "description": "Session not found"},
        },
        tags=["Store"],
        summary="Apply a field-level update",
    )
    async def update_document(
        session_id: str,
        body: UpdateDocumentRequest,
    ) -> Union[WriteResponse, JSONResponse]:
        """
        Merge fields into the document atomically.

        **Request Body:**
        ```json
        {"fields": {"participants/abc/vote": "5"}}
        ```
        """
        if not is_valid_session_id(session_id):
            return invalid_session_id(session_id)
        try:
            path = await api_service.update_session_document(session_id, body.fields)
        except StoreWriteError as e:
            return store_error_response(e)
        return WriteResponse(success=True, path=path)

    @app.get(
        "/api/v1/store/sessions/{session_id}",
        response_model=DocumentResponse,
        responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
        tags=["Store"],
        summary="Read a session document",
    )
    async def get_document(session_id: str) -> Union[DocumentResponse, JSONResponse]:
        if not is_valid_session_id(session_id):
            return invalid_session_id(session_id)
        document = api_service.get_session_document(session_id)
        if document is None:
            return make_error_response(
                ErrorCode.SESSION_NOT_FOUND,
                f"Session {session_id} not found",
                status_code=404,
            )
        return DocumentResponse(path=session_path(session_id), document=document)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @app.get(
        "/api/v1/store/sessions/{session_id}/events",
        responses={400: {"model": ErrorResponse}},
        tags=["Store"],
        summary="Subscribe to a session (Server-Sent Events)",
    )
    async def stream_events(session_id: str):
        """
        Stream snapshots of the session document.

        The current state is sent first (`snapshot` or `not_found`),
        then one event per write.
        """
        if not is_valid_session_id(session_id):
            return invalid_session_id(session_id)

        async def event_stream():
            queue: asyncio.Queue[SnapshotEvent] = asyncio.Queue()
            unsubscribe = api_service.store.subscribe(session_path(session_id), queue.put_nowait)
            try:
                while True:
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=SSE_HEARTBEAT_SECONDS)
                    except asyncio.TimeoutError:
                        yield ": heartbeat\n\n"
                        continue
                    yield event.to_sse()
            finally:
                unsubscribe()
                logger.debug("sse: client left session %s", session_id)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.websocket("/api/v1/store/sessions/{session_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, session_id: str):
        """
        WebSocket subscription.

        Messages from server:
        - snapshot: full document after a write
        - not_found: no document at the path
        - error: invalid client message

        Messages from client:
        - ping: Keep-alive

        An invalid session id closes the socket with code 1008.
        """
        if not is_valid_session_id(session_id):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.accept()

        queue: asyncio.Queue[SnapshotEvent] = asyncio.Queue()
        unsubscribe = api_service.store.subscribe(session_path(session_id), queue.put_nowait)

        async def pump():
            while True:
                event = await queue.get()
                await websocket.send_json(event.to_message())

        sender = asyncio.create_task(pump())
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await websocket.send_json({
                        "type": "error",
                        "error": "Invalid JSON",
                    })
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            logger.debug("ws: client left session %s", session_id)
        finally:
            unsubscribe()
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("ws: sender for session %s failed: %s", session_id, e)

    # =========================================================================
    # Session Views
    # =========================================================================

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List stored sessions",
    )
    async def list_sessions() -> SessionListResponse:
        sessions = api_service.list_sessions()
        return SessionListResponse(sessions=sessions, count=len(sessions))

    @app.get(
        "/api/v1/sessions/{session_id}/tally",
        response_model=TallyResponse,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            422: {"model": ErrorResponse, "description": "Stored document is not a session"},
        },
        tags=["Sessions"],
        summary="Get the decoded session and its tally",
    )
    async def get_tally(session_id: str) -> Union[TallyResponse, JSONResponse]:
        if not is_valid_session_id(session_id):
            return invalid_session_id(session_id)
        response = api_service.get_tally(session_id)
        if isinstance(response, ErrorResponse):
            status_code = 404 if response.error_code == ErrorCode.SESSION_NOT_FOUND else 422
            return make_error_response(response.error_code, response.error, status_code=status_code)
        return response

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="pokerplan-store",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Planning Poker Session Store",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app


async def _purge_loop(service: APIService) -> None:
    while True:
        await asyncio.sleep(PURGE_INTERVAL_SECONDS)
        service.purge_expired()
