import base64
from datetime import datetime, timedelta, timezone

import pytest
from cachelib.file import FileSystemCache

from app import create_app
from backend.models import build_session_factory, create_db_engine, init_db
from backend.services.moderation import ModerationPipeline
from backend.services.queue_service import QueueService


T0 = datetime(2025, 5, 1, 18, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock the tests move by hand"""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test"""
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def service(session_factory, clock):
    """Queue service that moderates from track metadata only"""
    return QueueService(session_factory, ModerationPipeline(lyrics_enabled=False), clock=clock)


@pytest.fixture
def request_body():
    """Build a public submission body, overriding any field"""

    def build(**overrides):
        body = {
            "trackId": "track-1",
            "trackName": "September",
            "artists": ["Earth, Wind & Fire"],
            "albumName": "The Best of Earth, Wind & Fire",
            "requesterName": "Alex",
            "requesterRole": "guest",
            "explicit": False,
            "danceMoment": "anytime",
            "energyLevel": 3,
            "vibeTags": ["throwback"],
        }
        body.update(overrides)
        return body

    return build


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "DATABASE_URL": "sqlite:///:memory:",
        "REDIS_URL": None,
        "DISABLE_LYRICS_MODERATION": True,
        "OPENAI_API_KEY": "",
        "ADMIN_USERNAME": "dj",
        "ADMIN_PASSWORD": "secret",
        "SPOTIFY_CLIENT_ID": "test-client-id",
        "SPOTIFY_CLIENT_SECRET": "test-client-secret",
        "ALLOWED_ORIGIN": "*",
        "SESSION_TYPE": "filesystem",
        "SESSION_CACHELIB": FileSystemCache(str(tmp_path / "sessions"), threshold=50),
        "CACHE_TYPE": "SimpleCache",
    })
    yield app
    app.db_engine.dispose()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def admin_headers():
    token = base64.b64encode(b"dj:secret").decode("ascii")
    return {"Authorization": f"Basic {token}"}
