"""
Engine Core - Session data model and state transitions.

The engine is the pure part of the system that:
1. Decodes shared session documents into Session snapshots
2. Validates commands (join, vote, reveal, reset)
3. Builds minimal field-level update payloads
4. Computes derived views (tally, average, per-participant display)
"""

from .cards import CARD_SET, COFFEE, InvalidCardError, parse_card, is_valid_card
from .state import (
    Participant,
    Session,
    SessionDecodeError,
    decode_session,
    normalize_name,
    DEFAULT_NAME,
    DEFAULT_TOPIC,
)
from .command import Command, CommandType, CommandResult, ErrorKind, UpdatePayload
from .reducer import (
    SessionStateMachine,
    CreatedSession,
    apply_command,
    admin_only,
    allow_all,
    merge_update,
)
from .tally import Tally, ParticipantView, compute_tally, participant_views

__all__ = [
    "CARD_SET",
    "COFFEE",
    "InvalidCardError",
    "parse_card",
    "is_valid_card",
    "Participant",
    "Session",
    "SessionDecodeError",
    "decode_session",
    "normalize_name",
    "DEFAULT_NAME",
    "DEFAULT_TOPIC",
    "Command",
    "CommandType",
    "CommandResult",
    "ErrorKind",
    "UpdatePayload",
    "SessionStateMachine",
    "CreatedSession",
    "apply_command",
    "admin_only",
    "allow_all",
    "merge_update",
    "Tally",
    "ParticipantView",
    "compute_tally",
    "participant_views",
]
