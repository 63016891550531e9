"""Tests for room and connection delivery."""
import pytest

from threadline.chat.broadcaster import Broadcaster
from threadline.chat.manager import SessionStore
from threadline.chat.schemas import ServerEvent, User

from test_manager import ALICE, BOB, FakeWebSocket


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def broadcaster(store):
    return Broadcaster(store)


async def _joined(store, user: User, thread_id: int, fail: bool = False):
    ws = FakeWebSocket(fail=fail)
    session = await store.connect(ws, user)
    store.join(session.connection_id, thread_id)
    return session, ws


class TestToThread:
    @pytest.mark.asyncio
    async def test_sender_included(self, store, broadcaster):
        _, ws1 = await _joined(store, ALICE, 1)
        _, ws2 = await _joined(store, ALICE, 1)

        delivered = await broadcaster.to_thread(1, ServerEvent.MESSAGE_RECEIVED, {"id": 9})

        assert delivered == 2
        expected = {"type": "message_received", "data": {"id": 9}}
        assert ws1.sent == [expected]
        assert ws2.sent == [expected]

    @pytest.mark.asyncio
    async def test_other_rooms_untouched(self, store, broadcaster):
        _, ws1 = await _joined(store, ALICE, 1)
        _, ws2 = await _joined(store, BOB, 2)

        await broadcaster.to_thread(1, ServerEvent.AI_TYPING, {"threadId": 1, "isTyping": True})

        assert len(ws1.sent) == 1
        assert ws2.sent == []

    @pytest.mark.asyncio
    async def test_empty_room(self, broadcaster):
        assert await broadcaster.to_thread(99, ServerEvent.ERROR, {"message": "x"}) == 0

    @pytest.mark.asyncio
    async def test_failing_recipient_skipped(self, store, broadcaster):
        _, healthy = await _joined(store, ALICE, 1)
        broken_session, _ = await _joined(store, BOB, 1, fail=True)

        delivered = await broadcaster.to_thread(1, ServerEvent.MESSAGE_RECEIVED, {"id": 1})

        assert delivered == 1
        assert len(healthy.sent) == 1
        # Removing the session is left to its own handler
        assert store.get(broken_session.connection_id) is not None

    @pytest.mark.asyncio
    async def test_except_excludes_one_connection(self, store, broadcaster):
        typist, typist_ws = await _joined(store, ALICE, 1)
        _, other_ws = await _joined(store, BOB, 1)

        await broadcaster.to_thread_except(
            1, typist.connection_id, ServerEvent.USER_TYPING, {"isTyping": True}
        )

        assert typist_ws.sent == []
        assert other_ws.sent == [{"type": "user_typing", "data": {"isTyping": True}}]


class TestToUserAndConnection:
    @pytest.mark.asyncio
    async def test_to_user_reaches_every_connection(self, store, broadcaster):
        ws1, ws2, bob_ws = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        await store.connect(ws1, ALICE)
        await store.connect(ws2, ALICE)
        await store.connect(bob_ws, BOB)

        delivered = await broadcaster.to_user(ALICE.id, ServerEvent.THREAD_DELETED, {"threadId": 3})

        assert delivered == 2
        assert ws1.sent == ws2.sent == [{"type": "thread_deleted", "data": {"threadId": 3}}]
        assert bob_ws.sent == []

    @pytest.mark.asyncio
    async def test_to_connection(self, store, broadcaster):
        ws = FakeWebSocket()
        session = await store.connect(ws, ALICE)

        assert await broadcaster.to_connection(session.connection_id, ServerEvent.ERROR, {"message": "boom"}) == 1
        assert ws.sent == [{"type": "error", "data": {"message": "boom"}}]

    @pytest.mark.asyncio
    async def test_to_gone_connection(self, broadcaster):
        assert await broadcaster.to_connection("gone", ServerEvent.ERROR, {"message": "boom"}) == 0
