"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between clients and the store service.
All responses include explicit types for OpenAPI schema generation.

Error Codes:
- SESSION_NOT_FOUND: No document exists for the session
- ALREADY_EXISTS: A create targeted an existing session
- INVALID_PATH: An update used a malformed field path
- INVALID_DOCUMENT: A create sent something other than a mapping
- LOAD_FAILED: The stored document is not a well-formed session
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_PATH = "INVALID_PATH"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
    LOAD_FAILED = "LOAD_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Shared Models
# =============================================================================

class ParticipantInfo(BaseModel):
    """Participant as shown to everyone in the session."""
    participant_id: str
    name: str
    is_admin: bool = False
    has_voted: bool = False
    display_vote: str = Field(description="Vote once revealed, otherwise a voted/not-voted marker")

    model_config = {"from_attributes": True}


# =============================================================================
# Request Models
# =============================================================================

class CreateDocumentRequest(BaseModel):
    """Full document for a new session."""
    document: dict[str, Any] = Field(..., description="Complete session document")


class UpdateDocumentRequest(BaseModel):
    """Field-level partial update, applied atomically."""
    fields: dict[str, Any] = Field(
        ...,
        description="Sub-path -> value. Paths use '/' or '.' separators; null deletes.",
        examples=[{"participants/abc/vote": "5"}],
    )


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class WriteResponse(BaseModel):
    """Acknowledgement of a create or update."""
    success: bool
    path: str
    api_version: str = "v1"


class DocumentResponse(BaseModel):
    """Current document at a path."""
    path: str
    document: dict[str, Any]
    api_version: str = "v1"


class TallyResponse(BaseModel):
    """
    Decoded session with its tally.

    counts and average stay null until the session is revealed.
    """
    session_id: str
    topic: str
    revealed: bool
    participant_count: int
    participants: list[ParticipantInfo] = Field(default_factory=list)
    total_votes: int = 0
    counts: Optional[dict[str, int]] = None
    average: Optional[float] = None
    numeric_votes: Optional[int] = None
    api_version: str = "v1"


class SessionListResponse(BaseModel):
    """Response listing stored sessions."""
    sessions: list[str]
    count: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
