"""
tests/test_sessions.py -- Unit tests for sessions/store.py.

A fake clock is injected so expiry can be tested without sleeping.
"""

from __future__ import annotations

import pytest

from sessions.store import SessionStore

SECRET = "s" * 48


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(clock: FakeClock):
    store = SessionStore(SECRET, ":memory:", ttl=3600, clock=clock)
    yield store
    store.close()


def test_create_and_get(sessions: SessionStore) -> None:
    sid = sessions.create(42)
    assert len(sid) >= 32
    assert sessions.get(sid) == 42


def test_unknown_sid(sessions: SessionStore) -> None:
    assert sessions.get("does-not-exist") is None
    assert sessions.get("") is None


def test_sids_are_unique(sessions: SessionStore) -> None:
    assert sessions.create(1) != sessions.create(1)


def test_raw_sid_is_not_stored(sessions: SessionStore) -> None:
    sid = sessions.create(42)
    stored = [row[0] for row in sessions._conn.execute("SELECT sid_hash FROM sessions")]
    assert sid not in stored
    assert len(stored) == 1


def test_expires_at_ttl(sessions: SessionStore, clock: FakeClock) -> None:
    sid = sessions.create(42)
    clock.now += 3599
    assert sessions.get(sid) == 42
    clock.now += 1
    assert sessions.get(sid) is None


def test_expired_row_is_deleted_on_lookup(sessions: SessionStore, clock: FakeClock) -> None:
    sid = sessions.create(42)
    clock.now += 3600
    assert sessions.get(sid) is None
    clock.now -= 3600
    assert sessions.get(sid) is None


def test_destroy(sessions: SessionStore) -> None:
    sid = sessions.create(42)
    assert sessions.destroy(sid) is True
    assert sessions.get(sid) is None
    assert sessions.destroy(sid) is False


def test_destroy_for_user(sessions: SessionStore) -> None:
    a1 = sessions.create(1)
    a2 = sessions.create(1)
    b = sessions.create(2)
    assert sessions.destroy_for_user(1) == 2
    assert sessions.get(a1) is None
    assert sessions.get(a2) is None
    assert sessions.get(b) == 2


def test_purge_expired(sessions: SessionStore, clock: FakeClock) -> None:
    old = sessions.create(1)
    clock.now += 1800
    fresh = sessions.create(2)
    clock.now += 1800
    assert sessions.purge_expired() == 1
    assert sessions.get(old) is None
    assert sessions.get(fresh) == 2


def test_different_secret_cannot_read_sessions(tmp_path, clock: FakeClock) -> None:
    path = tmp_path / "sessions.db"
    first = SessionStore(SECRET, path, clock=clock)
    sid = first.create(5)
    first.close()

    other = SessionStore("t" * 48, path, clock=clock)
    assert other.get(sid) is None
    other.close()

    same = SessionStore(SECRET, path, clock=clock)
    assert same.get(sid) == 5
    same.close()
