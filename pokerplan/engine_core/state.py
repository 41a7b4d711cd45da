"""
Session State - The data model of a planning poker session.

Design principles:
- Immutable: Session and Participant are frozen snapshots
- Decoded from the shared store document, never mutated in place
- All changes are expressed as partial-update payloads (see reducer.py)

Wire format (one document per session, at sessions/{session_id}):

    {
        "topic": "Sprint 1",
        "revealed": false,
        "participants": {
            "<participant_id>": {"name": "Alice", "vote": null, "isAdmin": true}
        }
    }
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator

from .cards import parse_card


DEFAULT_NAME = "Anonymous"
DEFAULT_TOPIC = "Planning Poker"
MAX_NAME_LENGTH = 64


def normalize_name(name: str | None) -> str:
    """Strip a display name, falling back to the default when blank."""
    text = (name or "").strip()
    if not text:
        return DEFAULT_NAME
    return text[:MAX_NAME_LENGTH]


def normalize_topic(topic: str | None, default: str = DEFAULT_TOPIC) -> str:
    text = (topic or "").strip()
    return text or default


class SessionDecodeError(ValueError):
    """Raised when a store document is not a well-formed session."""


# =============================================================================
# Wire schema
# =============================================================================

class ParticipantDocument(BaseModel):
    """A participant entry as stored in the shared document."""
    name: StrictStr
    vote: Optional[str] = None
    is_admin: StrictBool = Field(False, alias="isAdmin")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("vote", mode="before")
    @classmethod
    def _normalize_vote(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return parse_card(value)


class SessionDocument(BaseModel):
    """A session as stored in the shared document."""
    topic: StrictStr = ""
    revealed: StrictBool = False
    participants: dict[str, ParticipantDocument] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


# =============================================================================
# Domain values
# =============================================================================

@dataclass(frozen=True)
class Participant:
    """
    One voter (or the admin) within a session.

    is_admin is fixed at creation. vote is None until cast.
    """
    participant_id: str
    name: str
    vote: str | None = None
    is_admin: bool = False

    @property
    def has_voted(self) -> bool:
        return self.vote is not None

    def to_document(self) -> dict[str, Any]:
        return {"name": self.name, "vote": self.vote, "isAdmin": self.is_admin}


@dataclass(frozen=True)
class Session:
    """
    A decoded snapshot of a shared session document.

    Participants keep the document's insertion order for display,
    but nothing in the engine depends on that order.
    """
    session_id: str
    topic: str = ""
    revealed: bool = False
    participants: dict[str, Participant] = field(default_factory=dict)

    @property
    def participant_ids(self) -> list[str]:
        return list(self.participants)

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def admin_id(self) -> str | None:
        """ID of the admin, if still present in the document."""
        for pid, participant in self.participants.items():
            if participant.is_admin:
                return pid
        return None

    def get_participant(self, participant_id: str) -> Participant | None:
        return self.participants.get(participant_id)

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in self.participants

    def is_admin(self, participant_id: str | None) -> bool:
        if participant_id is None:
            return False
        participant = self.participants.get(participant_id)
        return bool(participant and participant.is_admin)

    def to_document(self) -> dict[str, Any]:
        """Encode back to the wire format."""
        return {
            "topic": self.topic,
            "revealed": self.revealed,
            "participants": {
                pid: p.to_document() for pid, p in self.participants.items()
            },
        }


def decode_session(document: Any, session_id: str = "") -> Session:
    """
    Decode a store document into a Session.

    Raises SessionDecodeError for anything that is not a session.
    """
    if not isinstance(document, dict):
        raise SessionDecodeError(
            f"Session document must be a mapping, got {type(document).__name__}"
        )

    try:
        parsed = SessionDocument.model_validate(document)
    except ValidationError as e:
        raise SessionDecodeError(f"Malformed session document: {e}") from e

    participants = {
        pid: Participant(
            participant_id=pid,
            name=entry.name,
            vote=entry.vote,
            is_admin=entry.is_admin,
        )
        for pid, entry in parsed.participants.items()
    }
    return Session(
        session_id=session_id,
        topic=parsed.topic,
        revealed=parsed.revealed,
        participants=participants,
    )
