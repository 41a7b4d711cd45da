"""
Tests for the in-memory session store.

Tests:
- Subscriptions deliver current state and every write
- Create/update error codes
- Concurrent field-level writes
- Expiry
"""

import asyncio

import pytest

from ..engine_core.reducer import SessionStateMachine
from ..engine_core.state import decode_session
from ..store import InMemorySessionStore, SnapshotEvent, SnapshotKind, StoreWriteError, session_path

PATH = session_path("abc")


def initial_document():
    return {
        "topic": "Sprint 1",
        "revealed": False,
        "participants": {
            "alice": {"name": "Alice", "vote": None, "isAdmin": True},
            "bob": {"name": "Bob", "vote": None, "isAdmin": False},
            "carol": {"name": "Carol", "vote": None, "isAdmin": False},
        },
    }


class Recorder:
    """Collects delivered events."""

    def __init__(self):
        self.events: list[SnapshotEvent] = []

    def __call__(self, event: SnapshotEvent):
        self.events.append(event)

    @property
    def kinds(self):
        return [e.kind for e in self.events]

    @property
    def last(self) -> SnapshotEvent:
        return self.events[-1]


class TestSubscribe:
    """Tests for subscriptions."""

    def test_missing_path_delivers_not_found(self, store):
        recorder = Recorder()
        store.subscribe(PATH, recorder)
        assert recorder.kinds == [SnapshotKind.NOT_FOUND]

    @pytest.mark.asyncio
    async def test_existing_path_delivers_snapshot_immediately(self, store):
        await store.create(PATH, initial_document())
        recorder = Recorder()
        store.subscribe(PATH, recorder)

        assert recorder.kinds == [SnapshotKind.SNAPSHOT]
        assert recorder.last.document == initial_document()

    @pytest.mark.asyncio
    async def test_every_write_reaches_every_subscriber(self, store):
        first, second = Recorder(), Recorder()
        store.subscribe(PATH, first)
        store.subscribe(PATH, second)

        await store.create(PATH, initial_document())
        await store.update(PATH, {"revealed": True})

        for recorder in (first, second):
            assert recorder.kinds == [SnapshotKind.NOT_FOUND, SnapshotKind.SNAPSHOT, SnapshotKind.SNAPSHOT]
            assert recorder.last.document["revealed"] is True

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, store):
        recorder = Recorder()
        unsubscribe = store.subscribe(PATH, recorder)
        unsubscribe()
        await store.create(PATH, initial_document())

        assert recorder.kinds == [SnapshotKind.NOT_FOUND]
        assert store.subscriber_count(PATH) == 0

    @pytest.mark.asyncio
    async def test_other_paths_are_not_delivered(self, store):
        recorder = Recorder()
        store.subscribe(PATH, recorder)
        await store.create(session_path("other"), initial_document())
        assert recorder.kinds == [SnapshotKind.NOT_FOUND]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, store, caplog):
        def broken(event):
            raise RuntimeError("boom")

        recorder = Recorder()
        store.subscribe(PATH, broken)
        store.subscribe(PATH, recorder)
        await store.create(PATH, initial_document())

        assert recorder.last.kind == SnapshotKind.SNAPSHOT
        assert "subscriber for sessions/abc raised" in caplog.text

    @pytest.mark.asyncio
    async def test_delivered_documents_are_copies(self, store):
        await store.create(PATH, initial_document())
        recorder = Recorder()
        store.subscribe(PATH, recorder)
        recorder.last.document["topic"] = "changed"

        assert store.get(PATH)["topic"] == "Sprint 1"


class TestWrites:
    """Tests for create and update."""

    @pytest.mark.asyncio
    async def test_create_twice_fails(self, store):
        await store.create(PATH, initial_document())
        with pytest.raises(StoreWriteError) as exc_info:
            await store.create(PATH, {"topic": "other"})

        assert exc_info.value.code == "ALREADY_EXISTS"
        assert store.get(PATH)["topic"] == "Sprint 1"

    @pytest.mark.asyncio
    async def test_create_requires_mapping(self, store):
        with pytest.raises(StoreWriteError) as exc_info:
            await store.create(PATH, ["not", "a", "mapping"])
        assert exc_info.value.code == "INVALID_DOCUMENT"

    @pytest.mark.asyncio
    async def test_update_missing_document_fails(self, store):
        with pytest.raises(StoreWriteError) as exc_info:
            await store.update(PATH, {"revealed": True})
        assert exc_info.value.code == "NOT_FOUND"
        assert not store.exists(PATH)

    @pytest.mark.asyncio
    async def test_update_invalid_path(self, store):
        await store.create(PATH, initial_document())
        with pytest.raises(StoreWriteError) as exc_info:
            await store.update(PATH, {"participants//vote": "5"})
        assert exc_info.value.code == "INVALID_PATH"

    @pytest.mark.asyncio
    async def test_empty_update_is_noop(self, store):
        await store.create(PATH, initial_document())
        recorder = Recorder()
        store.subscribe(PATH, recorder)
        await store.update(PATH, {})
        assert len(recorder.events) == 1

    @pytest.mark.asyncio
    async def test_concurrent_votes_both_survive(self, store):
        await store.create(PATH, initial_document())
        session = decode_session(store.get(PATH), session_id="abc")
        machine = SessionStateMachine()

        bob = machine.submit_vote(session, "bob", "5").payload.to_dict()
        carol = machine.submit_vote(session, "carol", "13").payload.to_dict()
        await asyncio.gather(store.update(PATH, bob), store.update(PATH, carol))

        final = decode_session(store.get(PATH))
        assert final.get_participant("bob").vote == "5"
        assert final.get_participant("carol").vote == "13"

    @pytest.mark.asyncio
    async def test_vote_applied_after_reset_survives(self, store):
        """Per-field last writer wins: a vote merged after a reset is kept."""
        document = initial_document()
        document["participants"]["bob"]["vote"] = "8"
        document["revealed"] = True
        await store.create(PATH, document)
        session = decode_session(store.get(PATH), session_id="abc")
        machine = SessionStateMachine()

        reset = machine.reset(session, "alice").payload.to_dict()
        vote = machine.submit_vote(session, "carol", "3").payload.to_dict()
        await store.update(PATH, reset)
        await store.update(PATH, vote)

        final = decode_session(store.get(PATH))
        assert final.revealed is False
        assert final.get_participant("bob").vote is None
        assert final.get_participant("carol").vote == "3"


class TestExpiry:
    """Tests for idle-document expiry."""

    @pytest.mark.asyncio
    async def test_purge_expired(self):
        now = [1000.0]
        store = InMemorySessionStore(ttl_seconds=60, clock=lambda: now[0])
        await store.create(PATH, initial_document())
        recorder = Recorder()
        store.subscribe(PATH, recorder)

        now[0] += 30
        assert store.purge_expired() == []

        now[0] += 31
        assert store.purge_expired() == [PATH]
        assert not store.exists(PATH)
        assert recorder.last.kind == SnapshotKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_writes_refresh_expiry(self):
        now = [0.0]
        store = InMemorySessionStore(ttl_seconds=60, clock=lambda: now[0])
        await store.create(PATH, initial_document())

        now[0] = 50
        await store.update(PATH, {"revealed": True})
        now[0] = 100
        assert store.purge_expired() == []

    def test_no_ttl_never_purges(self, store):
        assert store.purge_expired(now=10 ** 12) == []


class TestSnapshotMessages:
    """Tests for the wire form of subscription events."""

    def test_message_round_trip(self):
        event = SnapshotEvent.snapshot(PATH, {"topic": "x"})
        assert SnapshotEvent.from_message(event.to_message()) == event

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            SnapshotEvent.from_message({"type": "bogus", "path": PATH})

    def test_sse_frame(self):
        frame = SnapshotEvent.not_found(PATH).to_sse()
        assert frame.startswith("event: not_found\ndata: ")
        assert frame.endswith("\n\n")
