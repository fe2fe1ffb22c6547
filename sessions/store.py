"""
sessions/store.py -- SQLite-backed server-side session store.

A session maps a random session id to a user id and nothing else; the full
User is re-read from the credential store on every request. The cookie holds
the raw id. The database holds only HMAC-SHA256(SESSION_SECRET, sid), so a
leaked sessions table cannot be replayed without the secret.

TTL is absolute: a session expires SESSION_TTL_SECONDS after login regardless
of activity. Expired rows are deleted lazily on lookup and in bulk by
purge_expired() (run every 6 hours by api/main.py, or `python main.py
purge-sessions`).

Usage:
    sessions = SessionStore(secret, db_path="sessions.db")
    sid = sessions.create(user_id=7)      # put sid in the cookie
    sessions.get(sid)                     # -> 7, or None once expired
    sessions.destroy(sid)                 # logout
"""

import hashlib
import hmac
import secrets
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional, Union

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "sessions.db"
_DEFAULT_TTL = 60 * 60 * 24  # 24 hours in seconds

_DDL = """
CREATE TABLE IF NOT EXISTS sessions (
    sid_hash    TEXT PRIMARY KEY,
    user_id     INTEGER NOT NULL,
    created_at  REAL NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class SessionStore:
    def __init__(
        self,
        secret: str,
        db_path: Union[str, Path] = ":memory:",
        ttl: int = _DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self._secret = secret.encode()
        self._clock = clock
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.execute("CREATE INDEX IF NOT EXISTS ix_sessions_user ON sessions (user_id)")
        self._conn.commit()

    def _hash(self, sid: str) -> str:
        return hmac.new(self._secret, sid.encode(), hashlib.sha256).hexdigest()

    def create(self, user_id: int) -> str:
        """Start a session for user_id and return the raw session id for the cookie."""
        sid = secrets.token_urlsafe(32)
        now = self._clock()
        self._conn.execute(
            "INSERT INTO sessions (sid_hash, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
            (self._hash(sid), user_id, now, now + self.ttl),
        )
        self._conn.commit()
        return sid

    def get(self, sid: str) -> Optional[int]:
        """Return the user id for sid if the session exists and hasn't expired."""
        if not sid:
            return None
        key = self._hash(sid)
        row = self._conn.execute(
            "SELECT user_id, expires_at FROM sessions WHERE sid_hash = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        user_id, expires_at = row
        if self._clock() >= expires_at:
            self._delete(key)
            return None
        return user_id

    def destroy(self, sid: str) -> bool:
        """Delete the session. Returns False if it did not exist."""
        if not sid:
            return False
        return self._delete(self._hash(sid)) > 0

    def destroy_for_user(self, user_id: int) -> int:
        """Delete every session belonging to user_id (account deleted or password changed)."""
        cursor = self._conn.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
        self._conn.commit()
        return cursor.rowcount

    def purge_expired(self) -> int:
        """Delete all expired sessions. Returns number of rows removed."""
        cursor = self._conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (self._clock(),))
        self._conn.commit()
        return cursor.rowcount

    def _delete(self, key: str) -> int:
        cursor = self._conn.execute("DELETE FROM sessions WHERE sid_hash = ?", (key,))
        self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()
