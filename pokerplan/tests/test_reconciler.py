"""
Tests for the client reconciler.

Tests:
- Loading, not-found and malformed snapshots
- Commands become store writes, never local mutations
- Rejections raise before anything is written
- Write failures are logged and leave the view untouched
- Participant cap
"""

import pytest

from ..engine_core.command import ErrorKind
from ..store import InMemorySessionStore, SnapshotEvent, StoreWriteError, session_path
from ..session import ClientReconciler, CommandRejected, ParticipantCapPolicy, ReconcilerState
from .conftest import make_identity


class FailingUpdateStore(InMemorySessionStore):
    """Store that accepts creates but refuses every update."""

    async def update(self, path, fields):
        raise StoreWriteError("Store unreachable", path=path, code="TRANSPORT_ERROR")


class FailingCreateStore(InMemorySessionStore):
    async def create(self, path, document):
        raise StoreWriteError("Permission denied", path=path, code="FORBIDDEN")


async def start_session(admin_client, voter_client=None, topic="Sprint 1"):
    session_id = await admin_client.create_session(topic)
    if voter_client is not None:
        voter_client.attach(session_id)
        await voter_client.join()
    return session_id


class TestLoading:
    """Tests for attaching to sessions."""

    def test_starts_idle(self, voter_client):
        assert voter_client.state == ReconcilerState.IDLE
        assert voter_client.view.session is None

    def test_missing_session(self, voter_client):
        voter_client.attach("missing")

        view = voter_client.view
        assert view.state == ReconcilerState.ERROR
        assert view.error == ErrorKind.SESSION_NOT_FOUND
        assert view.session is None

    @pytest.mark.asyncio
    async def test_malformed_document(self, store, voter_client, caplog):
        await store.create(session_path("broken"), {"participants": "nobody"})
        voter_client.attach("broken")

        assert voter_client.state == ReconcilerState.ERROR
        assert voter_client.error == ErrorKind.LOAD_FAILED
        assert "could not decode sessions/broken" in caplog.text

    def test_subscription_error(self, voter_client):
        voter_client.attach("abc")
        voter_client.handle_snapshot(SnapshotEvent.failed(session_path("abc"), "connection lost"))

        assert voter_client.error == ErrorKind.LOAD_FAILED
        assert voter_client.error_message == "connection lost"

    @pytest.mark.asyncio
    async def test_snapshot_for_other_path_ignored(self, admin_client):
        await start_session(admin_client)
        admin_client.handle_snapshot(SnapshotEvent.not_found(session_path("elsewhere")))
        assert admin_client.state == ReconcilerState.READY

    @pytest.mark.asyncio
    async def test_create_attaches_as_admin(self, admin_client, store):
        session_id = await start_session(admin_client)

        view = admin_client.view
        assert session_id == "session-1"
        assert view.state == ReconcilerState.READY
        assert view.is_admin
        assert view.is_participant
        assert view.session.topic == "Sprint 1"
        assert store.subscriber_count(session_path(session_id)) == 1

    @pytest.mark.asyncio
    async def test_create_failure(self):
        client = ClientReconciler(FailingCreateStore(), make_identity("alice", "Alice"))
        session_id = await client.create_session("Sprint 1")

        assert session_id is None
        assert client.state == ReconcilerState.IDLE
        assert client.last_write_error.kind == ErrorKind.WRITE_FAILED

    @pytest.mark.asyncio
    async def test_name_entry_needed_without_stored_name(self, admin_client, anonymous_client):
        session_id = await start_session(admin_client)
        anonymous_client.attach(session_id)

        assert anonymous_client.view.needs_name_entry
        assert not anonymous_client.view.is_participant

    @pytest.mark.asyncio
    async def test_no_name_entry_with_stored_name(self, admin_client, voter_client):
        session_id = await start_session(admin_client)
        voter_client.attach(session_id)
        assert not voter_client.view.needs_name_entry

    @pytest.mark.asyncio
    async def test_detach(self, admin_client, store):
        session_id = await start_session(admin_client)
        admin_client.detach()

        assert admin_client.state == ReconcilerState.IDLE
        assert admin_client.session is None
        assert store.subscriber_count(session_path(session_id)) == 0


class TestCommands:
    """Tests for commands flowing through the store."""

    @pytest.mark.asyncio
    async def test_join_then_vote(self, admin_client, voter_client):
        await start_session(admin_client, voter_client)
        assert voter_client.view.is_participant
        assert not voter_client.view.is_admin

        await voter_client.submit_vote("5")

        assert voter_client.view.my_vote == "5"
        bob = admin_client.view.session.get_participant("bob")
        assert bob.vote == "5"
        assert not admin_client.view.revealed

    @pytest.mark.asyncio
    async def test_commands_do_not_mutate_local_state(self, admin_client, voter_client):
        await start_session(admin_client, voter_client)
        task = voter_client.submit_vote("8")

        assert voter_client.view.my_vote is None
        await task
        assert voter_client.view.my_vote == "8"

    @pytest.mark.asyncio
    async def test_name_entry_joins(self, admin_client, anonymous_client):
        session_id = await start_session(admin_client)
        anonymous_client.attach(session_id)

        await anonymous_client.submit_name("Dave")

        assert anonymous_client.identity.get_display_name() == "Dave"
        assert anonymous_client.view.is_participant
        assert not anonymous_client.view.needs_name_entry
        assert admin_client.view.session.get_participant("dave").name == "Dave"

    @pytest.mark.asyncio
    async def test_full_round(self, store, admin_client, voter_client):
        carol = ClientReconciler(store, make_identity("carol", "Carol"))
        session_id = await start_session(admin_client, voter_client)
        carol.attach(session_id)
        await carol.join()

        await voter_client.submit_vote("3")
        await carol.submit_vote("8")
        await admin_client.reveal()

        view = carol.view
        assert view.revealed
        assert view.tally.average == pytest.approx(5.5)
        assert {p.participant_id: p.display_vote for p in view.participants}["bob"] == "3"

        await admin_client.reset("Sprint 2")

        session = carol.view.session
        assert session.topic == "Sprint 2"
        assert not session.revealed
        assert all(p.vote is None for p in session.participants.values())

    @pytest.mark.asyncio
    async def test_listeners_notified(self, admin_client, voter_client):
        views = []
        remove = admin_client.on_change(views.append)
        await start_session(admin_client, voter_client)
        remove()
        await voter_client.submit_vote("2")

        assert views[-1].session.has_participant("bob")
        assert views[-1].session.get_participant("bob").vote is None

    @pytest.mark.asyncio
    async def test_drain_waits_for_writes(self, admin_client, voter_client):
        await start_session(admin_client, voter_client)
        voter_client.submit_vote("13")
        await voter_client.drain()
        assert voter_client.view.my_vote == "13"


class TestRejections:
    """Tests for commands refused before any write."""

    def test_no_session(self, voter_client):
        with pytest.raises(CommandRejected) as exc_info:
            voter_client.submit_vote("5")
        assert exc_info.value.kind == ErrorKind.NO_SESSION

    @pytest.mark.asyncio
    async def test_invalid_vote(self, admin_client, voter_client, store):
        session_id = await start_session(admin_client, voter_client)
        before = store.get(session_path(session_id))

        with pytest.raises(CommandRejected) as exc_info:
            voter_client.submit_vote("99")

        assert exc_info.value.kind == ErrorKind.INVALID_VOTE
        assert store.get(session_path(session_id)) == before

    @pytest.mark.asyncio
    async def test_vote_before_join(self, admin_client, anonymous_client):
        session_id = await start_session(admin_client)
        anonymous_client.attach(session_id)

        with pytest.raises(CommandRejected) as exc_info:
            anonymous_client.submit_vote("5")
        assert exc_info.value.kind == ErrorKind.NOT_A_PARTICIPANT

    @pytest.mark.asyncio
    async def test_non_admin_reveal_and_reset(self, admin_client, voter_client):
        await start_session(admin_client, voter_client)

        with pytest.raises(CommandRejected) as exc_info:
            voter_client.reveal()
        assert exc_info.value.kind == ErrorKind.FORBIDDEN

        with pytest.raises(CommandRejected):
            voter_client.reset()
        assert not admin_client.view.revealed


class TestWriteFailures:
    """Tests for writes the store refuses."""

    @pytest.mark.asyncio
    async def test_failed_vote_is_logged(self, machine, caplog):
        store = FailingUpdateStore()
        admin = ClientReconciler(store, make_identity("alice", "Alice"), machine=machine)
        await admin.create_session("Sprint 1")
        before = admin.view

        await admin.reveal()

        assert admin.last_write_error.kind == ErrorKind.WRITE_FAILED
        assert admin.last_write_error.fields == {"revealed": True}
        assert admin.state == ReconcilerState.READY
        assert admin.view.session == before.session
        assert "WriteFailed" in caplog.text


class TestParticipantCap:
    """Tests for the participant cap policy."""

    @pytest.mark.asyncio
    async def test_join_refused_when_full(self, store, machine):
        policy = ParticipantCapPolicy(max_participants=2)
        admin = ClientReconciler(store, make_identity("alice", "Alice"), machine=machine, cap_policy=policy)
        bob = ClientReconciler(store, make_identity("bob", "Bob"), cap_policy=policy)
        dave = ClientReconciler(store, make_identity("dave", "Dave"), cap_policy=policy)
        session_id = await start_session(admin, bob)
        dave.attach(session_id)

        with pytest.raises(CommandRejected) as exc_info:
            dave.join()
        assert exc_info.value.kind == ErrorKind.SESSION_FULL

        await bob.join("Bobby")
        assert admin.view.session.get_participant("bob").name == "Bobby"

    @pytest.mark.asyncio
    async def test_zero_disables_cap(self, store, machine):
        policy = ParticipantCapPolicy(max_participants=0)
        admin = ClientReconciler(store, make_identity("alice", "Alice"), machine=machine)
        session_id = await start_session(admin)
        for i in range(30):
            client = ClientReconciler(store, make_identity(f"p{i}", f"P{i}"), cap_policy=policy)
            client.attach(session_id)
            await client.join()
            client.detach()

        assert admin.view.session.participant_count == 31


class TestParticipantIds:
    """Tests for local ids that cannot be stored as one entry."""

    @pytest.mark.asyncio
    async def test_dotted_id_cannot_join(self, store, admin_client):
        session_id = await start_session(admin_client)
        before = store.get(session_path(session_id))
        dotted = ClientReconciler(store, make_identity("bob.smith", "Bob"))
        dotted.attach(session_id)

        with pytest.raises(CommandRejected) as exc_info:
            dotted.join()

        assert exc_info.value.kind == ErrorKind.INVALID_PARTICIPANT
        assert store.get(session_path(session_id)) == before
        assert admin_client.state == ReconcilerState.READY
        assert dotted.state == ReconcilerState.READY

    @pytest.mark.asyncio
    async def test_dotted_id_cannot_create(self, store):
        client = ClientReconciler(store, make_identity("alice/admin", "Alice"))

        with pytest.raises(CommandRejected) as exc_info:
            client.create_session("Sprint 1")

        assert exc_info.value.kind == ErrorKind.INVALID_PARTICIPANT
        assert store.list_paths() == []
