"""
Client Reconciler - Bridges the live store feed to the state machine.

The reconciler is the client side of the synchronization model:

1. Subscribes to the session document
2. Decodes every snapshot through the engine
3. Exposes the derived view (session, admin flag, tally)
4. Turns user commands into update payloads and forwards them

Key principle: the STORE owns session state, not the client.
Commands are fire-and-forget and never mutate the local copy;
their effect is only observed when the next snapshot arrives.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine

from ..engine_core.command import CommandResult, ErrorKind, UpdatePayload
from ..engine_core.reducer import SessionStateMachine
from ..engine_core.state import Session, SessionDecodeError, decode_session
from ..engine_core.tally import ParticipantView, Tally, compute_tally, participant_views
from ..identity import IdentityProvider
from ..store.adapter import SessionStore, SnapshotEvent, SnapshotKind, StoreWriteError, session_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARTICIPANTS = 25


class ReconcilerState(Enum):
    """Observable state of the client."""
    IDLE = "idle"  # No session attached
    LOADING = "loading"  # Subscribed, waiting for the first snapshot
    READY = "ready"  # A decoded session is available
    ERROR = "error"  # Session missing or undecodable


class CommandRejected(Exception):
    """A command was refused locally; nothing was written."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass
class ParticipantCapPolicy:
    """
    Limits how many participants a session accepts.

    Applies to new participants only; rejoining is always allowed.
    The check reads the last snapshot, so concurrent joins can still
    overshoot by a few entries.
    """
    max_participants: int = DEFAULT_MAX_PARTICIPANTS  # 0 disables

    def allows_join(self, session: Session, participant_id: str) -> bool:
        if self.max_participants <= 0:
            return True
        if session.has_participant(participant_id):
            return True
        return session.participant_count < self.max_participants


@dataclass(frozen=True)
class WriteFailure:
    """A store write that did not go through."""
    kind: ErrorKind
    message: str
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionView:
    """
    Everything the presentation layer renders.

    session and tally are None unless state is READY.
    """
    state: ReconcilerState
    session_id: str | None = None
    local_participant_id: str | None = None
    session: Session | None = None
    error: ErrorKind | None = None
    error_message: str | None = None
    is_participant: bool = False
    is_admin: bool = False
    needs_name_entry: bool = False
    tally: Tally | None = None
    participants: list[ParticipantView] = field(default_factory=list)

    @property
    def my_vote(self) -> str | None:
        if not self.session or not self.local_participant_id:
            return None
        participant = self.session.get_participant(self.local_participant_id)
        return participant.vote if participant else None

    @property
    def revealed(self) -> bool:
        return bool(self.session and self.session.revealed)


ChangeListener = Callable[[SessionView], None]


class ClientReconciler:
    """
    One client's live connection to one session at a time.

    Usage:
        reconciler = ClientReconciler(store, identity)
        reconciler.attach(session_id)

        # Commands return the scheduled write; awaiting is optional.
        reconciler.join("Alice")
        reconciler.submit_vote("5")

        # Render whenever a snapshot has been processed
        reconciler.on_change(render)

    Commands need a running event loop.
    """

    def __init__(
        self,
        store: SessionStore,
        identity: IdentityProvider,
        machine: SessionStateMachine | None = None,
        cap_policy: ParticipantCapPolicy | None = None,
    ):
        self.store = store
        self.identity = identity
        self.machine = machine or SessionStateMachine()
        self.cap_policy = cap_policy or ParticipantCapPolicy()

        self.state = ReconcilerState.IDLE
        self.session_id: str | None = None
        self.session: Session | None = None
        self.error: ErrorKind | None = None
        self.error_message: str | None = None
        self.needs_name_entry = False
        self.last_write_error: WriteFailure | None = None

        self._unsubscribe: Callable[[], None] | None = None
        self._listeners: list[ChangeListener] = []
        self._pending: set[asyncio.Task] = set()

    @property
    def participant_id(self) -> str:
        return self.identity.get_or_create_participant_id()

    # =========================================================================
    # Subscription lifecycle
    # =========================================================================

    def attach(self, session_id: str) -> None:
        """Subscribe to a session, replacing any current subscription."""
        self.detach()
        self.session_id = session_id
        self.state = ReconcilerState.LOADING
        logger.info("reconciler: attaching to session %s", session_id)
        self._unsubscribe = self.store.subscribe(session_path(session_id), self.handle_snapshot)

    def detach(self) -> None:
        """Tear down the subscription. In-flight writes keep running."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.session_id is not None:
            logger.info("reconciler: detached from session %s", self.session_id)
        self.session_id = None
        self.session = None
        self.error = None
        self.error_message = None
        self.needs_name_entry = False
        self.state = ReconcilerState.IDLE

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Call listener with the new view after every processed snapshot."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def handle_snapshot(self, event: SnapshotEvent) -> None:
        """
        Process one delivery from the store subscription.

        Steps:
        1. not_found -> Error(SessionNotFound)
        2. error or undecodable document -> Error(LoadFailed)
        3. otherwise keep the decoded session and recompute local flags
        """
        if self.session_id is None or event.path != session_path(self.session_id):
            logger.debug("reconciler: ignoring snapshot for %s", event.path)
            return

        if event.kind == SnapshotKind.NOT_FOUND:
            self._fail(ErrorKind.SESSION_NOT_FOUND, f"Session {self.session_id} does not exist")
        elif event.kind == SnapshotKind.ERROR:
            logger.warning("reconciler: subscription error for %s: %s", event.path, event.error)
            self._fail(ErrorKind.LOAD_FAILED, event.error or "Subscription failed")
        else:
            try:
                session = decode_session(event.document, session_id=self.session_id)
            except SessionDecodeError as e:
                logger.warning("reconciler: could not decode %s: %s", event.path, e)
                self._fail(ErrorKind.LOAD_FAILED, str(e))
            else:
                self.session = session
                self.error = None
                self.error_message = None
                self.state = ReconcilerState.READY
                self.needs_name_entry = (
                    not session.has_participant(self.participant_id)
                    and self.identity.get_display_name() is None
                )

        self._notify()

    # =========================================================================
    # Derived view
    # =========================================================================

    @property
    def view(self) -> SessionView:
        session = self.session if self.state == ReconcilerState.READY else None
        local_id = self.participant_id
        if session is None:
            return SessionView(
                state=self.state,
                session_id=self.session_id,
                local_participant_id=local_id,
                error=self.error,
                error_message=self.error_message,
            )

        return SessionView(
            state=self.state,
            session_id=self.session_id,
            local_participant_id=local_id,
            session=session,
            is_participant=session.has_participant(local_id),
            is_admin=session.is_admin(local_id),
            needs_name_entry=self.needs_name_entry,
            tally=compute_tally(session),
            participants=participant_views(session),
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def create_session(self, topic: str | None = None) -> asyncio.Task:
        """
        Create a session with this device as admin, then attach to it.

        The returned task resolves to the new session id.
        """
        try:
            created = self.machine.create(topic, self.participant_id, self.identity.get_display_name())
        except ValueError as e:
            raise CommandRejected(ErrorKind.INVALID_PARTICIPANT, str(e)) from e
        return self._schedule(self._create_and_attach(created.session_id, created.document))

    def join(self, name: str | None = None) -> asyncio.Task:
        """Join (or rejoin) the attached session."""
        session = self._require_session()
        if not self.cap_policy.allows_join(session, self.participant_id):
            raise CommandRejected(
                ErrorKind.SESSION_FULL,
                f"Session is full ({self.cap_policy.max_participants} participants)",
            )
        if name is None:
            name = self.identity.get_display_name()
        return self._dispatch(self.machine.join(session, self.participant_id, name))

    def submit_name(self, name: str) -> asyncio.Task:
        """Answer the name-entry prompt: remember the name and join."""
        self.identity.set_display_name(name)
        self.needs_name_entry = False
        return self.join(name)

    def submit_vote(self, value: Any) -> asyncio.Task:
        session = self._require_session()
        return self._dispatch(self.machine.submit_vote(session, self.participant_id, value))

    def reveal(self) -> asyncio.Task:
        session = self._require_session()
        return self._dispatch(self.machine.reveal(session, self.participant_id))

    def reset(self, topic: str | None = None) -> asyncio.Task:
        session = self._require_session()
        return self._dispatch(self.machine.reset(session, self.participant_id, topic))

    async def drain(self) -> None:
        """Wait for every write issued so far to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_session(self) -> Session:
        if self.state != ReconcilerState.READY or self.session is None:
            raise CommandRejected(ErrorKind.NO_SESSION, "No session loaded")
        return self.session

    def _dispatch(self, result: CommandResult) -> asyncio.Task:
        if not result.success or result.payload is None:
            raise CommandRejected(result.error_code or ErrorKind.UNKNOWN_COMMAND, result.error or "Rejected")
        return self._schedule(self._send(self.session_id, result.payload))

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, session_id: str, payload: UpdatePayload) -> None:
        try:
            await self.store.update(session_path(session_id), payload.to_dict())
        except StoreWriteError as e:
            self._record_write_failure(str(e), payload.to_dict())

    async def _create_and_attach(self, session_id: str, document: dict[str, Any]) -> str | None:
        try:
            await self.store.create(session_path(session_id), document)
        except StoreWriteError as e:
            self._record_write_failure(str(e), document)
            return None
        logger.info("reconciler: created session %s", session_id)
        self.attach(session_id)
        return session_id

    def _record_write_failure(self, message: str, fields: dict[str, Any]) -> None:
        # Not retried; the view simply does not change.
        logger.warning("reconciler: %s: %s", ErrorKind.WRITE_FAILED.value, message)
        self.last_write_error = WriteFailure(ErrorKind.WRITE_FAILED, message, dict(fields))

    def _fail(self, kind: ErrorKind, message: str) -> None:
        self.session = None
        self.error = kind
        self.error_message = message
        self.needs_name_entry = False
        self.state = ReconcilerState.ERROR

    def _notify(self) -> None:
        view = self.view
        for listener in list(self._listeners):
            listener(view)
