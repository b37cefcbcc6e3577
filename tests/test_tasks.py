"""Tests for the periodic unlock sweep."""

from datetime import timedelta

import pytest

from capsule_api import capsules as ops
from capsule_api import database, tasks
from capsule_api.config import get_settings
from capsule_api.models import Capsule

from .conftest import START, make_capsule


def test_run_sweep_notifies_opened_capsules(db, owner, session_factory, monkeypatch):
    due = make_capsule(db, owner, START - timedelta(minutes=1))
    make_capsule(db, owner, START + timedelta(minutes=1))
    sent = []
    monkeypatch.setattr(tasks.send_open_notification, "delay", lambda *args: sent.append(args))

    opened = tasks.run_sweep(session_factory, now=START)

    assert opened == [due.id]
    assert sent == [(due.id, "alice")]
    db.expire_all()
    assert db.get(Capsule, due.id).is_unlocked is True


def test_second_sweep_is_quiet(db, owner, session_factory, monkeypatch):
    make_capsule(db, owner, START - timedelta(minutes=1))
    sent = []
    monkeypatch.setattr(tasks.send_open_notification, "delay", lambda *args: sent.append(args))

    tasks.run_sweep(session_factory, now=START)
    assert tasks.run_sweep(session_factory, now=START + timedelta(minutes=10)) == []
    assert len(sent) == 1


def test_capsule_opened_by_a_read_is_still_notified(db, owner, session_factory, monkeypatch):
    capsule = make_capsule(db, owner, START - timedelta(minutes=1))
    sent = []
    monkeypatch.setattr(tasks.send_open_notification, "delay", lambda *args: sent.append(args))

    [(_, result)] = ops.list_capsules(db, owner, START)
    assert result.transitioned

    assert tasks.run_sweep(session_factory, now=START) == [capsule.id]
    assert sent == [(capsule.id, "alice")]


def test_failed_notification_is_retried_by_next_sweep(db, owner, session_factory, monkeypatch):
    first = make_capsule(db, owner, START - timedelta(minutes=2))
    second = make_capsule(db, owner, START - timedelta(minutes=1))
    sent = []

    def broker_down_after_one(*args):
        if sent:
            raise ConnectionError("broker unavailable")
        sent.append(args)

    monkeypatch.setattr(tasks.send_open_notification, "delay", broker_down_after_one)
    with pytest.raises(ConnectionError):
        tasks.run_sweep(session_factory, now=START)
    assert sent == [(first.id, "alice")]

    monkeypatch.setattr(tasks.send_open_notification, "delay", lambda *args: sent.append(args))
    assert tasks.run_sweep(session_factory, now=START + timedelta(minutes=10)) == [second.id]
    assert sent == [(first.id, "alice"), (second.id, "alice")]


def test_background_session_factory_is_built_on_first_use(tmp_path, monkeypatch):
    db_path = tmp_path / "jobs.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    get_settings.cache_clear()
    database.get_session_factory.cache_clear()
    try:
        factory = database.get_session_factory()
        assert factory is database.get_session_factory()
        assert factory.kw["bind"].url.database == str(db_path)
        assert db_path.exists()
        factory.kw["bind"].dispose()
    finally:
        get_settings.cache_clear()
        database.get_session_factory.cache_clear()


def test_send_open_notification_message():
    message = tasks.send_open_notification.run("abc", "alice")
    assert message.startswith("Notification: Capsule abc is now open for alice")
