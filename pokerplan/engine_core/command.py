"""
Command System - Commands, update payloads, and results.

Commands represent the mutations a participant can request
after a session exists:
1. join   - insert or refresh a participant entry
2. vote   - set one participant's vote
3. reveal - show all votes
4. reset  - clear all votes, optionally change the topic

Applying a command never touches the store. It yields an
UpdatePayload: a minimal set of field paths to merge into the
shared document in one atomic update.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CommandType(Enum):
    """Types of commands in the system."""
    JOIN = "join"
    VOTE = "vote"
    REVEAL = "reveal"
    RESET = "reset"


class ErrorKind(Enum):
    """Why a command or a snapshot could not be applied."""
    SESSION_NOT_FOUND = "SessionNotFound"
    LOAD_FAILED = "LoadFailed"
    INVALID_VOTE = "InvalidVote"
    WRITE_FAILED = "WriteFailed"
    FORBIDDEN = "Forbidden"
    NOT_A_PARTICIPANT = "NotAParticipant"
    INVALID_PARTICIPANT = "InvalidParticipant"
    SESSION_FULL = "SessionFull"
    NO_SESSION = "NoSession"
    UNKNOWN_COMMAND = "UnknownCommand"


def participant_path(participant_id: str, *fields: str) -> str:
    """Sub-path of a participant entry (or one of its fields)."""
    return "/".join(("participants", participant_id) + fields)


def is_valid_participant_id(participant_id: str) -> bool:
    """Ids are single path segments: non-empty, no "/" or "."."""
    return bool(participant_id) and not any(sep in participant_id for sep in "/.")


@dataclass(frozen=True)
class UpdatePayload:
    """
    A partial update: sub-path -> value, applied atomically.

    A value of None removes the field. Paths are relative to the
    session document root and use "/" separators.
    """
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def paths(self) -> set[str]:
        return set(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass
class CommandPayload:
    """
    Parameters for a command.

    Different command types use different fields; validation
    happens in the state machine.
    """
    participant_id: str | None = None
    name: str | None = None
    vote: Any = None
    topic: str | None = None


@dataclass
class Command:
    """A mutation requested by a participant."""
    command_type: CommandType
    payload: CommandPayload

    @classmethod
    def join(cls, participant_id: str, name: str | None = None) -> Command:
        """Factory for join command."""
        return cls(
            command_type=CommandType.JOIN,
            payload=CommandPayload(participant_id=participant_id, name=name),
        )

    @classmethod
    def vote(cls, participant_id: str, value: Any) -> Command:
        """Factory for vote command."""
        return cls(
            command_type=CommandType.VOTE,
            payload=CommandPayload(participant_id=participant_id, vote=value),
        )

    @classmethod
    def reveal(cls, actor_id: str | None = None) -> Command:
        """Factory for reveal command."""
        return cls(
            command_type=CommandType.REVEAL,
            payload=CommandPayload(participant_id=actor_id),
        )

    @classmethod
    def reset(cls, actor_id: str | None = None, topic: str | None = None) -> Command:
        """Factory for reset command."""
        return cls(
            command_type=CommandType.RESET,
            payload=CommandPayload(participant_id=actor_id, topic=topic),
        )


@dataclass
class CommandResult:
    """
    Result of applying a command to a session snapshot.

    Contains:
    - Whether the command was accepted
    - The update payload to send to the store (if accepted)
    - The rejection reason (if not)
    """
    success: bool
    payload: UpdatePayload | None = None
    error: str | None = None
    error_code: ErrorKind | None = None

    @classmethod
    def failure(cls, error: str, error_code: ErrorKind | None = None) -> CommandResult:
        """Create a rejection result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def accepted(cls, fields: dict[str, Any]) -> CommandResult:
        """Create a success result carrying an update payload."""
        return cls(success=True, payload=UpdatePayload(fields=fields))
