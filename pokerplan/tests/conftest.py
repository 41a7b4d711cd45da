"""
Pytest fixtures for pokerplan tests.
"""

import itertools

import pytest

from ..engine_core.reducer import SessionStateMachine
from ..engine_core.state import Participant, Session
from ..identity import IdentityProvider, MemoryKeyValueStore
from ..session import ClientReconciler
from ..store import InMemorySessionStore


def make_session(*participants: Participant, topic: str = "Sprint 1", revealed: bool = False,
                 session_id: str = "test-session") -> Session:
    """Build a Session snapshot from participants."""
    return Session(
        session_id=session_id,
        topic=topic,
        revealed=revealed,
        participants={p.participant_id: p for p in participants},
    )


@pytest.fixture
def machine() -> SessionStateMachine:
    """State machine with predictable session ids."""
    counter = itertools.count(1)
    return SessionStateMachine(id_factory=lambda: f"session-{next(counter)}")


@pytest.fixture
def voting_session() -> Session:
    """
    A(admin, no vote), B voted 3, C voted 8.
    """
    return make_session(
        Participant("alice", "Alice", vote=None, is_admin=True),
        Participant("bob", "Bob", vote="3"),
        Participant("carol", "Carol", vote="8"),
    )


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


def make_identity(participant_id: str, name: str | None = None) -> IdentityProvider:
    data = {"participantId": participant_id}
    if name:
        data["displayName"] = name
    return IdentityProvider(MemoryKeyValueStore(data))


@pytest.fixture
def admin_client(store, machine) -> ClientReconciler:
    """Reconciler for the device that creates sessions."""
    return ClientReconciler(store, make_identity("alice", "Alice"), machine=machine)


@pytest.fixture
def voter_client(store) -> ClientReconciler:
    """Reconciler for a second device with a remembered name."""
    return ClientReconciler(store, make_identity("bob", "Bob"))


@pytest.fixture
def anonymous_client(store) -> ClientReconciler:
    """Reconciler for a device that never entered a name."""
    return ClientReconciler(store, make_identity("dave"))
