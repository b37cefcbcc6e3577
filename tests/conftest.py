"""Shared fixtures for capsule API tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from capsule_api.admission import MediaKind, MediaLimits
from capsule_api.auth import create_access_token
from capsule_api.config import Settings
from capsule_api.database import init_db, make_engine, make_session_factory
from capsule_api.main import create_app
from capsule_api.models import Capsule, User
from capsule_api.storage import IncomingFile, LocalStorage

START = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        secret_key="test-secret",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        media_root=tmp_path / "media",
    )


@pytest.fixture
def limits() -> MediaLimits:
    return MediaLimits(
        per_kind_max={MediaKind.IMAGE: 5, MediaKind.VIDEO: 2, MediaKind.AUDIO: 3},
        total_max=10,
    )


@pytest.fixture
def session_factory(settings):
    engine = make_engine(settings.database_url)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(settings) -> LocalStorage:
    return LocalStorage(settings.media_root, "/media")


@pytest.fixture
def owner(db) -> User:
    user = User(username="alice")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_capsule(db, user, unlock_date, **kwargs) -> Capsule:
    capsule = Capsule(
        user_id=user.id,
        title=kwargs.pop("title", "Letter to future me"),
        message=kwargs.pop("message", "Hello from the past"),
        unlock_date=unlock_date,
        **kwargs,
    )
    db.add(capsule)
    db.commit()
    db.refresh(capsule)
    return capsule


def video(name: str = "clip.mp4", content_type: str = "video/mp4") -> IncomingFile:
    return IncomingFile(name, content_type, b"\x00\x00\x00\x18ftypmp42")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(settings, clock):
    app = create_app(settings)
    app.state.clock = clock
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def _create_user(app, username: str) -> User:
    session = app.state.session_factory()
    try:
        user = User(username=username)
        session.add(user)
        session.commit()
        return User(id=user.id, username=user.username)
    finally:
        session.close()


@pytest.fixture
def users(client, app, settings):
    """Two users with bearer headers. Returns (alice_headers, bob_headers)."""
    alice = _create_user(app, "alice")
    bob = _create_user(app, "bob")
    return (
        {"Authorization": f"Bearer {create_access_token(alice, settings.secret_key)}"},
        {"Authorization": f"Bearer {create_access_token(bob, settings.secret_key)}"},
    )
