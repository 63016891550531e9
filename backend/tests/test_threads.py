"""Tests for the thread REST API."""
import duckdb

from threadline.chat.gateway import gateway
from threadline.chat.scheduler import scheduler
from threadline.chat.threads_router import total_pages
from threadline.files.service import file_registry

from conftest import auth_headers


class TestListThreads:
    def test_empty(self, client, alice_token):
        response = client.get("/threads", headers=auth_headers(alice_token))

        assert response.status_code == 200
        assert response.json() == {
            "threads": [],
            "pagination": {"page": 1, "limit": 20, "total": 0, "totalPages": 0},
        }

    def test_pagination_and_summary(self, client, alice, alice_token, bob_thread):
        threads = [gateway.create_thread(alice.id, f"thread {i}") for i in range(3)]
        gateway.append_message(threads[0].id, alice.id, "latest activity", is_user_authored=True)

        response = client.get("/threads?page=1&limit=2", headers=auth_headers(alice_token))
        body = response.json()

        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
        assert len(body["threads"]) == 2
        first = body["threads"][0]
        assert first["id"] == threads[0].id
        assert first["messageCount"] == 1
        assert first["lastMessage"] == "latest activity"
        # Bob's thread never shows up
        assert all(t["userId"] == alice.id for t in body["threads"])

    def test_invalid_page(self, client, alice_token):
        response = client.get("/threads?page=0", headers=auth_headers(alice_token))
        assert response.status_code == 422


class TestCreateThread:
    def test_create_with_title(self, client, alice, alice_token):
        response = client.post("/threads", json={"title": "Biology"}, headers=auth_headers(alice_token))

        assert response.status_code == 201
        thread = response.json()["thread"]
        assert thread["title"] == "Biology"
        assert thread["userId"] == alice.id
        assert thread["messages"] == []
        assert gateway.thread_belongs_to_user(thread["id"], alice.id)

    def test_create_default_title(self, client, alice_token):
        response = client.post("/threads", json={}, headers=auth_headers(alice_token))
        assert response.json()["thread"]["title"] == "New Chat"

    def test_notifies_user_room(self, client, alice_token):
        with client.websocket_connect(f"/ws?token={alice_token}") as ws:
            assert ws.receive_json()["type"] == "connected"

            response = client.post("/threads", json={"title": "Live"}, headers=auth_headers(alice_token))

            frame = ws.receive_json()
            assert frame["type"] == "thread_created"
            assert frame["data"]["thread"]["id"] == response.json()["thread"]["id"]

    def test_requires_auth(self, client):
        assert client.post("/threads", json={}).status_code == 401


class TestGetThread:
    def test_messages_in_order(self, client, alice, alice_token, alice_thread):
        for text in ("one", "two"):
            gateway.append_message(alice_thread.id, alice.id, text, is_user_authored=True)

        response = client.get(f"/threads/{alice_thread.id}", headers=auth_headers(alice_token))

        assert response.status_code == 200
        thread = response.json()["thread"]
        assert thread["id"] == alice_thread.id
        assert [m["content"] for m in thread["messages"]] == ["one", "two"]

    def test_foreign_thread_not_found(self, client, alice_token, bob_thread):
        response = client.get(f"/threads/{bob_thread.id}", headers=auth_headers(alice_token))
        assert response.status_code == 404
        assert response.json() == {"error": "Thread not found"}


class TestDeleteThread:
    def test_delete(self, client, alice, alice_token, alice_thread):
        gateway.append_message(alice_thread.id, alice.id, "gone soon", is_user_authored=True)

        with client.websocket_connect(f"/ws?token={alice_token}") as ws:
            ws.receive_json()
            response = client.delete(f"/threads/{alice_thread.id}", headers=auth_headers(alice_token))
            assert ws.receive_json() == {"type": "thread_deleted", "data": {"threadId": alice_thread.id}}

        assert response.status_code == 200
        assert gateway.count_threads(alice.id) == 0
        assert gateway.count_messages(alice_thread.id) == 0

    def test_delete_foreign_thread(self, client, bob, alice_token, bob_thread):
        response = client.delete(f"/threads/{bob_thread.id}", headers=auth_headers(alice_token))
        assert response.status_code == 404
        assert gateway.count_threads(bob.id) == 1


class TestPostMessage:
    def test_post_message_and_reply(self, client, alice_token, alice_thread):
        response = client.post(
            f"/threads/{alice_thread.id}/messages",
            json={"content": "  Why is the sky blue?  "},
            headers=auth_headers(alice_token),
        )

        assert response.status_code == 201
        message = response.json()["userMessage"]
        assert message["content"] == "Why is the sky blue?"
        assert message["isUser"] is True

        client.portal.call(scheduler.drain)

        thread = client.get(f"/threads/{alice_thread.id}", headers=auth_headers(alice_token)).json()["thread"]
        assert [m["isUser"] for m in thread["messages"]] == [True, False]
        assert thread["title"] == "Why is the sky blue?"

    def test_broadcast_to_joined_connections(self, client, alice_token, alice_thread):
        with client.websocket_connect(f"/ws?token={alice_token}") as ws:
            ws.receive_json()
            ws.send_json({"type": "join_thread", "data": {"threadId": alice_thread.id}})
            ws.send_text("{not json")
            assert ws.receive_json()["type"] == "error"

            client.post(
                f"/threads/{alice_thread.id}/messages",
                json={"content": "from rest"},
                headers=auth_headers(alice_token),
            )

            assert ws.receive_json()["data"]["content"] == "from rest"
            assert ws.receive_json()["type"] == "ai_typing"

    def test_empty_content(self, client, alice_token, alice_thread):
        response = client.post(
            f"/threads/{alice_thread.id}/messages",
            json={"content": "   "},
            headers=auth_headers(alice_token),
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Message content is required"}
        assert gateway.count_messages(alice_thread.id) == 0

    def test_foreign_thread(self, client, alice_token, bob_thread):
        response = client.post(
            f"/threads/{bob_thread.id}/messages",
            json={"content": "hello"},
            headers=auth_headers(alice_token),
        )
        assert response.status_code == 404
        assert gateway.count_messages(bob_thread.id) == 0

    def test_missing_file(self, client, alice_token, alice_thread):
        response = client.post(
            f"/threads/{alice_thread.id}/messages",
            json={"content": "attached", "fileId": 31337},
            headers=auth_headers(alice_token),
        )
        assert response.status_code == 404
        assert response.json() == {"error": "File not found"}

    def test_attachment_lookup_failure(self, client, monkeypatch, alice_token, alice_thread):
        class BrokenDatabase:
            def fetchone(self, sql, params=()):
                raise duckdb.IOException("disk unavailable")

        monkeypatch.setattr(file_registry, "_db", BrokenDatabase())
        response = client.post(
            f"/threads/{alice_thread.id}/messages",
            json={"content": "attached", "fileId": 1},
            headers=auth_headers(alice_token),
        )
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to send message"}
        assert gateway.count_messages(alice_thread.id) == 0


def test_total_pages():
    assert total_pages(0, 20) == 0
    assert total_pages(20, 20) == 1
    assert total_pages(21, 20) == 2


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
