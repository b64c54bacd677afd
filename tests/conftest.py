"""
Pytest configuration and fixtures for the realtime service tests.
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from piyakast.config import Settings
from piyakast.database import Base, make_session_factory
from piyakast.main import create_app
from piyakast.models.stream import Stream
from piyakast.models.user import User
from piyakast.services.storage import Storage


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStorage:
    """In-memory stand-in for the storage collaborator.

    Records every status write. ``fail_updates`` / ``fail_live_query`` /
    ``fail_create`` simulate an unreachable database.
    """

    def __init__(self, live=()):
        self.live = set(live)
        self.messages = []
        self.status_calls = []
        self.fail_updates = False
        self.fail_live_query = False
        self.fail_create = False

    async def get_live_streams(self):
        if self.fail_live_query:
            raise ConnectionError("database unavailable")
        return [SimpleNamespace(id=stream_id) for stream_id in sorted(self.live)]

    async def update_stream_status(self, stream_id, is_live, viewer_count=None):
        self.status_calls.append((stream_id, is_live, viewer_count))
        if self.fail_updates:
            raise ConnectionError("database unavailable")
        if is_live:
            self.live.add(stream_id)
        else:
            self.live.discard(stream_id)

    async def create_chat_message(self, stream_id, user_id, message):
        if self.fail_create:
            raise ConnectionError("database unavailable")
        saved = SimpleNamespace(
            id=f"m{len(self.messages) + 1}",
            stream_id=stream_id,
            user_id=user_id,
            message=message,
            type="normal",
            created_at="2025-08-07T16:39:41",
            username="Unknown User",
            profile_image_url=None,
        )
        self.messages.append(saved)
        return saved

    async def get_chat_messages_by_stream(self, stream_id, limit=50):
        matching = [m for m in self.messages if m.stream_id == stream_id]
        return list(reversed(matching))[:limit]


class FakeSocket:
    """Collects what the server would have sent over a WebSocket."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def of_type(self, event_type):
        return [m for m in self.sent if m["type"] == event_type]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def make_socket():
    return FakeSocket


@pytest.fixture
def engine():
    """
    Fresh in-memory database per test; StaticPool keeps the single
    connection alive across threadpool workers.
    """
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def storage(session_factory):
    return Storage(session_factory)


@pytest.fixture
def settings():
    # Sweeps are driven by hand in tests
    return Settings(stream_monitor_enabled=False, chat_history_limit=20)


@pytest.fixture
def app(settings, engine):
    return create_app(settings=settings, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed_user(session_factory):
    with session_factory() as db:
        user = User(id="u1", username="minji", first_name="Minji")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user


@pytest.fixture
def seed_stream(session_factory, seed_user):
    with session_factory() as db:
        stream = Stream(id="abc", user_id=seed_user.id, title="K-pop dance practice")
        db.add(stream)
        db.commit()
        db.refresh(stream)
        return stream
