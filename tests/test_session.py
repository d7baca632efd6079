"""Tests for registration/session.py — admin sessions in local storage."""
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from registration.session import SESSION_PREFIX, SessionStore


class _Now:
    def __init__(self):
        self.value = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.value


@pytest.fixture()
def now():
    return _Now()


@pytest.fixture()
def sessions(storage, now):
    return SessionStore(storage, hours=3, clock=now)


class TestSessionStore:
    def test_create_and_get(self, sessions, storage):
        session = sessions.create("admin@example.com")
        assert sessions.get(session.token).email == "admin@example.com"
        stored = json.loads(storage.get_item(SESSION_PREFIX + session.token))
        assert set(stored) == {"token", "email", "timestamp", "expires"}

    def test_expires_after_window(self, sessions, storage, now):
        session = sessions.create("admin@example.com")
        now.value += timedelta(hours=2, minutes=59)
        assert sessions.get(session.token) is not None
        now.value += timedelta(minutes=2)
        assert sessions.get(session.token) is None
        assert storage.get_item(SESSION_PREFIX + session.token) is None

    def test_unknown_or_empty_token(self, sessions):
        assert sessions.get("nope") is None
        assert sessions.get("") is None

    def test_revoke(self, sessions):
        session = sessions.create("admin@example.com")
        sessions.revoke(session.token)
        assert sessions.get(session.token) is None

    def test_unreadable_session_discarded(self, sessions, storage):
        storage.set_item(SESSION_PREFIX + "garbage", "{\"token\": 1}")
        assert sessions.get("garbage") is None
        assert storage.get_item(SESSION_PREFIX + "garbage") is None

    def test_purge_expired(self, sessions, now):
        sessions.create("a@example.com")
        now.value += timedelta(hours=1)
        live = sessions.create("b@example.com")
        now.value += timedelta(hours=2, minutes=30)
        assert sessions.purge_expired() == 1
        assert sessions.get(live.token) is not None

    def test_tokens_are_unique(self, sessions):
        assert sessions.create("a@example.com").token != sessions.create("a@example.com").token
