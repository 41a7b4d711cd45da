"""
Session State Machine - Turns commands into update payloads.

The state machine is the single place that decides what a
mutation looks like on the wire. It never writes anything:
callers forward the payload to the session store.

Design principles:
- Pure function: (session snapshot, command) -> CommandResult
- Validates before building a payload
- Every payload is a minimal field-level patch; after creation
  no operation ever replaces the full document, so concurrent
  writers touching other fields are never clobbered
"""

from __future__ import annotations
import copy
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .cards import InvalidCardError, parse_card
from .command import (
    Command,
    CommandResult,
    CommandType,
    ErrorKind,
    is_valid_participant_id,
    participant_path,
)
from .state import DEFAULT_TOPIC, Session, normalize_name, normalize_topic


AuthorizePredicate = Callable[[Session, Optional[str]], bool]


def admin_only(session: Session, actor_id: str | None) -> bool:
    """Only the session admin may reveal or reset."""
    return session.is_admin(actor_id)


def allow_all(session: Session, actor_id: str | None) -> bool:
    """Trust the caller. Reproduces a presentation-only admin check."""
    return True


@dataclass(frozen=True)
class CreatedSession:
    """A freshly generated session and the document to store for it."""
    session_id: str
    document: dict[str, Any]


def _new_session_id() -> str:
    return str(uuid.uuid4())


@dataclass
class SessionStateMachine:
    """
    Builds validated update payloads for session mutations.

    Stateless - all state is in the Session snapshot.
    The authorization predicate guards reveal and reset.
    """
    authorize: AuthorizePredicate = admin_only
    default_topic: str = DEFAULT_TOPIC
    id_factory: Callable[[], str] = field(default=_new_session_id)

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        topic: str | None,
        creator_id: str,
        creator_name: str | None = None,
    ) -> CreatedSession:
        """
        Generate a session with the creator as its sole admin.

        This is the only operation that produces a full document.
        Raises ValueError for a creator id that is not a single path segment.
        """
        if not is_valid_participant_id(creator_id):
            raise ValueError(f"Invalid participant id: {creator_id!r}")
        session_id = self.id_factory()
        document = {
            "topic": normalize_topic(topic, self.default_topic),
            "revealed": False,
            "participants": {
                creator_id: {
                    "name": normalize_name(creator_name),
                    "vote": None,
                    "isAdmin": True,
                },
            },
        }
        return CreatedSession(session_id=session_id, document=document)

    # =========================================================================
    # Mutations
    # =========================================================================

    def apply(self, session: Session, command: Command) -> CommandResult:
        """
        Apply a command to a session snapshot.

        Returns a CommandResult with the update payload or a rejection.
        """
        handler = self._get_handler(command.command_type)
        if not handler:
            return CommandResult.failure(
                f"No handler for command type: {command.command_type}",
                error_code=ErrorKind.UNKNOWN_COMMAND,
            )
        return handler(session, command)

    def join(
        self,
        session: Session | None,
        participant_id: str,
        name: str | None = None,
    ) -> CommandResult:
        """
        Insert (or refresh) a participant entry.

        Rejoining with the same id overwrites the name and clears the
        vote. The admin flag is never changed once set.
        """
        if not is_valid_participant_id(participant_id):
            return _invalid_participant(participant_id)
        is_admin = session.is_admin(participant_id) if session else False
        return CommandResult.accepted({
            participant_path(participant_id, "name"): normalize_name(name),
            participant_path(participant_id, "vote"): None,
            participant_path(participant_id, "isAdmin"): is_admin,
        })

    def submit_vote(self, session: Session, participant_id: str, value: Any) -> CommandResult:
        """Set one participant's vote. Last call wins."""
        try:
            card = parse_card(value)
        except InvalidCardError as e:
            return CommandResult.failure(str(e), error_code=ErrorKind.INVALID_VOTE)

        if not is_valid_participant_id(participant_id):
            return _invalid_participant(participant_id)

        # A bare vote path for an unknown id would create a nameless entry.
        if not session.has_participant(participant_id):
            return CommandResult.failure(
                f"Participant {participant_id} has not joined session {session.session_id}",
                error_code=ErrorKind.NOT_A_PARTICIPANT,
            )

        return CommandResult.accepted({participant_path(participant_id, "vote"): card})

    def reveal(self, session: Session, actor_id: str | None = None) -> CommandResult:
        """Show every vote."""
        if not self.authorize(session, actor_id):
            return CommandResult.failure(
                "Only the session admin can reveal votes",
                error_code=ErrorKind.FORBIDDEN,
            )
        return CommandResult.accepted({"revealed": True})

    def reset(
        self,
        session: Session,
        actor_id: str | None = None,
        new_topic: str | None = None,
    ) -> CommandResult:
        """
        Start a new round.

        Every current participant's vote is cleared by its own path.
        Clearing the participants mapping as a whole would drop
        entries joined concurrently; leaving a vote path out would
        let a stale vote survive the merge.
        """
        if not self.authorize(session, actor_id):
            return CommandResult.failure(
                "Only the session admin can reset the session",
                error_code=ErrorKind.FORBIDDEN,
            )

        fields: dict[str, Any] = {
            "revealed": False,
            "topic": normalize_topic(new_topic, session.topic),
        }
        for pid in session.participants:
            fields[participant_path(pid, "vote")] = None
        return CommandResult.accepted(fields)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _get_handler(self, command_type: CommandType):
        """Get the handler function for a command type."""
        handlers = {
            CommandType.JOIN: self._handle_join,
            CommandType.VOTE: self._handle_vote,
            CommandType.REVEAL: self._handle_reveal,
            CommandType.RESET: self._handle_reset,
        }
        return handlers.get(command_type)

    def _handle_join(self, session: Session, command: Command) -> CommandResult:
        if not command.payload.participant_id:
            return CommandResult.failure("Join requires a participant id")
        return self.join(session, command.payload.participant_id, command.payload.name)

    def _handle_vote(self, session: Session, command: Command) -> CommandResult:
        if not command.payload.participant_id:
            return CommandResult.failure("Vote requires a participant id")
        return self.submit_vote(session, command.payload.participant_id, command.payload.vote)

    def _handle_reveal(self, session: Session, command: Command) -> CommandResult:
        return self.reveal(session, command.payload.participant_id)

    def _handle_reset(self, session: Session, command: Command) -> CommandResult:
        return self.reset(session, command.payload.participant_id, command.payload.topic)


def _invalid_participant(participant_id: str) -> CommandResult:
    return CommandResult.failure(
        f"Participant id {participant_id!r} must be non-empty and contain no \"/\" or \".\"",
        error_code=ErrorKind.INVALID_PARTICIPANT,
    )


def apply_command(session: Session, command: Command, authorize: AuthorizePredicate = admin_only) -> CommandResult:
    """
    Convenience function to apply a command.

    Creates a SessionStateMachine and applies the command.
    """
    machine = SessionStateMachine(authorize=authorize)
    return machine.apply(session, command)


# =============================================================================
# Field-level merge
# =============================================================================

_PATH_SEPARATORS = re.compile(r"[/.]")


def split_path(path: str) -> list[str]:
    """Split a "/" or "." separated sub-path into its segments."""
    segments = _PATH_SEPARATORS.split(path.strip("/"))
    if not segments or any(not s for s in segments):
        raise ValueError(f"Invalid update path: {path!r}")
    return segments


def merge_update(document: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a partial update to a document, returning a new document.

    Each path is set independently (last writer wins per field).
    None deletes the leaf; mappings emptied by a delete are pruned.
    """
    merged = copy.deepcopy(document)
    for path, value in fields.items():
        segments = split_path(path)
        if value is None:
            _delete_path(merged, segments)
        else:
            _set_path(merged, segments, copy.deepcopy(value))
    return merged


def _set_path(document: dict[str, Any], segments: list[str], value: Any) -> None:
    node = document
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = value


def _delete_path(document: dict[str, Any], segments: list[str]) -> None:
    trail = []
    node = document
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            return
        trail.append((node, segment))
        node = child
    node.pop(segments[-1], None)

    # Prune parents left empty, but never the root.
    for parent, segment in reversed(trail):
        if parent[segment]:
            break
        del parent[segment]
