from datetime import UTC, datetime, timedelta

import pytest

from medtrack.db.models.session_entry import SessionEntry
from medtrack.services.session_store import (
    EMAIL_KEY,
    NAME_KEY,
    ROLE_KEY,
    TOKEN_KEY,
    USER_ID_KEY,
    SessionStore,
    purge_stale_sessions,
)

FULL = {
    TOKEN_KEY: "tok",
    ROLE_KEY: "REP",
    USER_ID_KEY: "7",
    NAME_KEY: "Ravi Rep",
    EMAIL_KEY: "rep@medtrack.test",
}


def test_write_then_read(db):
    store = SessionStore(db, "abc")
    store.write(FULL)

    assert store.read() == FULL


def test_write_replaces_previous_keys(db):
    store = SessionStore(db, "abc")
    store.write(FULL)
    store.write({TOKEN_KEY: "tok2", ROLE_KEY: "ADMIN", USER_ID_KEY: "1"})

    assert store.read() == {TOKEN_KEY: "tok2", ROLE_KEY: "ADMIN", USER_ID_KEY: "1"}


def test_write_refuses_partial_sessions(db):
    store = SessionStore(db, "abc")
    store.write(FULL)

    with pytest.raises(ValueError):
        store.write({TOKEN_KEY: "tok", USER_ID_KEY: "7"})

    # The earlier complete session is untouched.
    assert store.read() == FULL


def test_clear_removes_only_its_own_session(db):
    mine, other = SessionStore(db, "mine"), SessionStore(db, "other")
    mine.write(FULL)
    other.write(FULL)

    mine.clear()

    assert mine.read() == {}
    assert other.read() == FULL


def test_store_without_sid_is_empty(db):
    store = SessionStore(db, None)

    assert store.read() == {}
    store.clear()
    with pytest.raises(RuntimeError):
        store.write(FULL)


def test_purge_drops_whole_stale_sessions(db):
    old = datetime.now(UTC) - timedelta(days=3)
    fresh = SessionStore(db, "fresh")
    fresh.write(FULL)
    for key in (TOKEN_KEY, ROLE_KEY, USER_ID_KEY):
        db.add(SessionEntry(sid="abandoned", key=key, value="x", updated_at=old))
    # One old row is enough to retire a session.
    db.add(SessionEntry(sid="mixed", key=TOKEN_KEY, value="x", updated_at=old))
    db.add(SessionEntry(sid="mixed", key=ROLE_KEY, value="REP"))
    db.commit()

    removed = purge_stale_sessions(db, timedelta(hours=24))

    assert removed == 5
    assert SessionStore(db, "abandoned").read() == {}
    assert SessionStore(db, "mixed").read() == {}
    assert fresh.read() == FULL


def test_purge_with_nothing_stale(db):
    store = SessionStore(db, "abc")
    store.write(FULL)

    assert purge_stale_sessions(db, timedelta(hours=24)) == 0
    assert store.read() == FULL
