"""
API Service - Business logic layer between the API and the store.

The service:
1. Owns the hosted document store
2. Validates session ids
3. Decodes sessions for read-only tally views

This layer is framework-agnostic (can be used with FastAPI, Flask, etc.)
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Any

from ..engine_core.state import SessionDecodeError, decode_session
from ..engine_core.tally import compute_tally, participant_views
from ..store.adapter import SESSIONS_ROOT, session_path
from ..store.memory import InMemorySessionStore
from .schemas import ErrorCode, ErrorResponse, ParticipantInfo, TallyResponse

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_valid_session_id(session_id: str) -> bool:
    return bool(_SESSION_ID_RE.match(session_id))


@dataclass
class APIService:
    """
    Store service behind the HTTP endpoints.

    Usage:
        service = APIService(store=InMemorySessionStore(ttl_seconds=3600))
        await service.create_session_document(session_id, document)
        await service.update_session_document(session_id, {"revealed": True})
        service.get_tally(session_id)
    """
    store: InMemorySessionStore = field(default_factory=InMemorySessionStore)

    async def create_session_document(self, session_id: str, document: dict[str, Any]) -> str:
        """Create a session document. Raises StoreWriteError."""
        path = session_path(session_id)
        await self.store.create(path, document)
        return path

    async def update_session_document(self, session_id: str, fields: dict[str, Any]) -> str:
        """Merge a partial update. Raises StoreWriteError."""
        path = session_path(session_id)
        await self.store.update(path, fields)
        return path

    def get_session_document(self, session_id: str) -> dict[str, Any] | None:
        return self.store.get(session_path(session_id))

    def list_sessions(self) -> list[str]:
        prefix = SESSIONS_ROOT + "/"
        return [p[len(prefix):] for p in self.store.list_paths() if p.startswith(prefix)]

    def get_tally(self, session_id: str) -> TallyResponse | ErrorResponse:
        """
        Decode a session and compute its tally.

        Vote values and counts are withheld until reveal.
        """
        document = self.get_session_document(session_id)
        if document is None:
            return ErrorResponse(
                error=f"Session {session_id} not found",
                error_code=ErrorCode.SESSION_NOT_FOUND,
            )

        try:
            session = decode_session(document, session_id=session_id)
        except SessionDecodeError as e:
            return ErrorResponse(error=str(e), error_code=ErrorCode.LOAD_FAILED)

        tally = compute_tally(session)
        response = TallyResponse(
            session_id=session_id,
            topic=session.topic,
            revealed=session.revealed,
            participant_count=session.participant_count,
            participants=[ParticipantInfo.model_validate(v) for v in participant_views(session)],
            total_votes=tally.total_votes,
        )
        if session.revealed:
            response.counts = tally.counts
            response.average = tally.average
            response.numeric_votes = tally.numeric_votes
        return response

    def purge_expired(self) -> list[str]:
        return self.store.purge_expired()
