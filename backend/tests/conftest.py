"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from threadline.auth.service import issue_token, users
from threadline.chat.gateway import gateway
from threadline.chat.manager import sessions
from threadline.chat.scheduler import scheduler
from threadline.database import Database
from threadline.main import app


@pytest.fixture(autouse=True)
def memory_db():
    """Use an in-memory Database for each test.

    Prevents tests from opening the file-based threadline.duckdb, which can
    block if the backend server is running concurrently (DuckDB file lock
    contention).
    """
    Database.reset_instance()
    db = Database.get_instance(db_path=":memory:")
    yield db
    Database.reset_instance()


@pytest.fixture(autouse=True)
def instant_ai():
    """Remove the simulated AI latency so replies arrive immediately."""
    scheduler.reply_delay = lambda: 0.0
    scheduler.feature_delay = lambda: 0.0
    yield
    scheduler.reply_delay = None
    scheduler.feature_delay = None


@pytest.fixture(autouse=True)
def cleanup_sessions():
    """Forget sessions left behind by a failing test."""
    yield
    sessions.clear()


@pytest.fixture
def client():
    """TestClient running the app lifespan.

    Entering the client keeps a single event loop alive for the whole test,
    so several WebSocket sessions and background reply tasks share it.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice():
    return users.create_user("alice", "alice@example.com")


@pytest.fixture
def bob():
    return users.create_user("bob", "bob@example.com")


@pytest.fixture
def alice_token(alice):
    return issue_token(alice.id)


@pytest.fixture
def bob_token(bob):
    return issue_token(bob.id)


@pytest.fixture
def alice_thread(alice):
    return gateway.create_thread(alice.id)


@pytest.fixture
def bob_thread(bob):
    return gateway.create_thread(bob.id, "Bob's notes")


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
