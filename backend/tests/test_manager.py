"""Tests for the session store and thread membership registry."""
import pytest

from threadline.chat.manager import SessionStore
from threadline.chat.schemas import User


class FakeWebSocket:
    """Minimal stand-in recording what the server sends."""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(data)


ALICE = User(id=1, username="alice", email="alice@example.com")
BOB = User(id=2, username="bob", email="bob@example.com")


@pytest.fixture
def store():
    return SessionStore()


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self, store):
        ws = FakeWebSocket()
        session = await store.connect(ws, ALICE)

        assert ws.accepted is True
        assert store.get(session.connection_id) is session
        assert session.user_id == ALICE.id
        assert session.joined_threads == set()
        assert store.connections_for_user(ALICE.id) == [(session.connection_id, ws)]

    @pytest.mark.asyncio
    async def test_connection_ids_are_unique(self, store):
        first = await store.connect(FakeWebSocket(), ALICE)
        second = await store.connect(FakeWebSocket(), ALICE)
        assert first.connection_id != second.connection_id
        assert len(store.connections_for_user(ALICE.id)) == 2

    @pytest.mark.asyncio
    async def test_disconnect_drops_every_membership(self, store):
        session = await store.connect(FakeWebSocket(), ALICE)
        store.join(session.connection_id, 10)
        store.join(session.connection_id, 11)

        removed = store.disconnect(session.connection_id)

        assert removed is session
        assert store.get(session.connection_id) is None
        assert store.connections_in_thread(10) == []
        assert store.connections_in_thread(11) == []
        assert store.connections_for_user(ALICE.id) == []

    def test_disconnect_unknown_is_noop(self, store):
        assert store.disconnect("missing") is None


class TestMembership:
    @pytest.mark.asyncio
    async def test_join_is_idempotent(self, store):
        session = await store.connect(FakeWebSocket(), ALICE)

        assert store.join(session.connection_id, 5) is True
        assert store.join(session.connection_id, 5) is False
        assert store.thread_members(5) == {session.connection_id}
        assert session.joined_threads == {5}

    @pytest.mark.asyncio
    async def test_join_has_no_ownership_check(self, store):
        session = await store.connect(FakeWebSocket(), BOB)
        # Thread 5 may belong to anyone; joining never consults the database
        assert store.join(session.connection_id, 5) is True

    @pytest.mark.asyncio
    async def test_leave(self, store):
        session = await store.connect(FakeWebSocket(), ALICE)
        store.join(session.connection_id, 5)

        assert store.leave(session.connection_id, 5) is True
        assert store.thread_members(5) == set()
        assert session.joined_threads == set()

    @pytest.mark.asyncio
    async def test_leave_never_joined_is_noop(self, store):
        session = await store.connect(FakeWebSocket(), ALICE)
        assert store.leave(session.connection_id, 42) is False

    def test_join_unknown_connection(self, store):
        assert store.join("missing", 5) is False


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, store):
        alice_session = await store.connect(FakeWebSocket(), ALICE)
        bob_session = await store.connect(FakeWebSocket(), BOB)
        store.join(alice_session.connection_id, 7)

        snapshot = store.connections_in_thread(7)
        store.join(bob_session.connection_id, 7)

        assert [cid for cid, _ in snapshot] == [alice_session.connection_id]
        assert len(store.connections_in_thread(7)) == 2

    @pytest.mark.asyncio
    async def test_connection_view(self, store):
        ws = FakeWebSocket()
        session = await store.connect(ws, ALICE)

        assert store.connection(session.connection_id) == [(session.connection_id, ws)]
        store.disconnect(session.connection_id)
        assert store.connection(session.connection_id) == []

    @pytest.mark.asyncio
    async def test_clear(self, store):
        session = await store.connect(FakeWebSocket(), ALICE)
        store.join(session.connection_id, 1)
        store.clear()

        assert store.get(session.connection_id) is None
        assert store.thread_members(1) == set()
