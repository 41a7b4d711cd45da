"""
API Module - The session store as a network service.

Hosts the shared session documents for every client:
1. Clients create a session document once
2. Clients patch individual fields (join, vote, reveal, reset)
3. Clients subscribe and receive a full snapshot after every write

No accounts. Sessions live in memory until they expire.
"""

from .schemas import (
    # Requests
    CreateDocumentRequest,
    UpdateDocumentRequest,
    # Responses
    WriteResponse,
    DocumentResponse,
    TallyResponse,
    SessionListResponse,
    HealthResponse,
    ErrorResponse,
    # Shared
    ErrorCode,
    ParticipantInfo,
)
from .service import APIService
from .app import create_app

__all__ = [
    # Requests
    "CreateDocumentRequest",
    "UpdateDocumentRequest",
    # Responses
    "WriteResponse",
    "DocumentResponse",
    "TallyResponse",
    "SessionListResponse",
    "HealthResponse",
    "ErrorResponse",
    # Shared
    "ErrorCode",
    "ParticipantInfo",
    # Service
    "APIService",
    "create_app",
]
