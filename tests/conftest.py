"""
Shared fixtures for TaskMate backend tests.

MongoDB is replaced by mongomock; the active-session registry and the clock
are swapped through FastAPI dependency overrides.
"""
from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import security
from database import FOCUS_SESSIONS, TASKS, ensure_indexes, get_database
from dependencies import get_clock, get_registry
from main import app
from services.aggregator import TaskDurationAggregator
from services.analytics import AnalyticsEngine
from services.focus import FocusSessionManager
from services.hooks import SessionHooks
from services.registry import InMemoryActiveSessionRegistry
from services.stores import FocusSessionStore, TaskStore

NOW = datetime(2026, 10, 17, 9, 0, 0)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr(security, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    database = mongomock.MongoClient()["taskmate_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def registry():
    return InMemoryActiveSessionRegistry()


@pytest.fixture
def hooks():
    return SessionHooks()


@pytest.fixture
def manager(db, registry, hooks, clock):
    sessions, tasks = FocusSessionStore(db), TaskStore(db)
    TaskDurationAggregator(sessions, tasks).attach(hooks)
    return FocusSessionManager(sessions, tasks, registry, hooks, clock=clock)


@pytest.fixture
def engine(db):
    return AnalyticsEngine(FocusSessionStore(db), TaskStore(db))


@pytest.fixture
def make_task(db):
    def _make(user_id: str, title: str = "Write report", category: str = "work", actual_duration: int = 0) -> str:
        result = db[TASKS].insert_one({
            "user_id": user_id,
            "title": title,
            "category": category,
            "priority": 3,
            "tags": [],
            "completed": False,
            "archived": False,
            "actual_duration": actual_duration,
            "created_at": NOW,
            "updated_at": NOW,
        })
        return str(result.inserted_id)
    return _make


@pytest.fixture
def add_session(db):
    """Insert a finished focus session directly into the collection."""
    def _add(user_id: str, start_at: datetime, seconds: int, session_type: str = "work",
             task_id: str = None, interrupted: bool = False) -> str:
        result = db[FOCUS_SESSIONS].insert_one({
            "user_id": user_id,
            "task_id": task_id,
            "session_type": session_type,
            "start_at": start_at,
            "end_at": start_at + timedelta(seconds=seconds),
            "duration_sec": seconds,
            "interrupted": interrupted,
            "notes": None,
            "created_at": start_at + timedelta(seconds=seconds),
        })
        return str(result.inserted_id)
    return _add


@pytest.fixture
def client(db, registry, clock):
    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a user and return (user_id, auth headers)."""
    def _register(email: str = "alice@example.com", name: str = "Alice"):
        response = client.post("/api/auth/register", json={"email": email, "password": "secret123", "name": name})
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return data["user"]["id"], {"Authorization": f"Bearer {data['token']}"}
    return _register
