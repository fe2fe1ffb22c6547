"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as registrar/store.py).
UserStore is the repository; _row_to_user / _row_to_attempt are the mappers.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

The users table is public (users_table) because registrar/store.py must
write users and students inside one transaction: self-registration inserts
both, and deleting a student removes its owning user.

Layer rule: no imports from api/, registrar/, sessions/, or notifications/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, String, Table, Text, func, select

from auth.models import LoginAttempt, User, normalize_username
from core.database import Database, metadata

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="student"),
    Column("created_at", String(32), nullable=False),
)

_login_attempts = Table(
    "login_attempts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("success", Boolean, nullable=False),
    Column("ip_address", String(64)),
    Column("attempt_time", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and LoginAttempt entities.

    Usage:
        store = UserStore(db)
        store.create_user(User(username="admin", role="admin", hashed_password=hash_password("secret")))
        user = store.get_by_username("admin")
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.engine = db.engine
        db.create_all()

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                users_table.insert().values(
                    username=normalize_username(user.username),
                    password=user.hashed_password,
                    role=user.role,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by normalized username. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(
                users_table.select().where(users_table.c.username == normalize_username(username))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users_table.select().where(users_table.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with self.engine.connect() as conn:
            rows = conn.execute(users_table.select().order_by(users_table.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(users_table).where(users_table.c.role == "admin")
            ).scalar()
        return result or 0

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace the stored password hash. Returns False if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                users_table.update().where(users_table.c.id == user_id).values(password=hashed_password)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Login attempt audit
    # ------------------------------------------------------------------

    def record_login_attempt(self, user_id: int, success: bool, ip_address: str | None = None) -> int:
        """Append a LoginAttempt row. Records are never updated or deleted."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _login_attempts.insert().values(
                    user_id=user_id,
                    success=success,
                    ip_address=ip_address,
                    attempt_time=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_login_attempts(self, user_id: int) -> list[LoginAttempt]:
        """Return all attempts for a user, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _login_attempts.select()
                .where(_login_attempts.c.user_id == user_id)
                .order_by(_login_attempts.c.id)
            ).fetchall()
        return [_row_to_attempt(r) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.password,
        role=row.role,
        created_at=row.created_at,
    )


def _row_to_attempt(row) -> LoginAttempt:
    return LoginAttempt(
        id=row.id,
        user_id=row.user_id,
        success=bool(row.success),
        ip_address=row.ip_address,
        attempt_time=row.attempt_time,
    )
