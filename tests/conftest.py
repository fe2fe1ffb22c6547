"""
tests/conftest.py -- Shared test fixtures for the enrollment portal.

This module provides:
  - make_database(): isolated named shared-memory SQLite database
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: (client, token, admin_id) with a pre-created admin account
  - login(): POST /api/login helper that keeps the client's cookie jar empty

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and the rate limits must be set before any core/auth/api import:
get_settings() is cached on first use and api/routes read limits at import.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any core/auth/api import so get_settings() can
# auto-generate secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.dependencies import build_identity_strategies
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import get_settings
from core.database import Database
from notifications.service import NotificationService
from registrar.models import Course, Subject
from registrar.store import RegistrarStore
from sessions.store import SessionStore

ADMIN_USERNAME = "registrar"
ADMIN_PASSWORD = "adminpass123"
STUDENT_PASSWORD = "studentpass1"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_database(name: str) -> Database:
    """Return a Database on a named shared-memory SQLite instance.

    Args:
        name: Unique per test module/function so databases never share state.
    """
    return Database(f"sqlite:///file:test_{name}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(db: Database, user_store: UserStore, registrar: RegistrarStore, sessions: SessionStore):
    """Return an async context manager that replaces the real lifespan.

    The notifier is a real NotificationService built from the test settings,
    so with no SMTP/Twilio credentials both channels report "not configured".
    Tests that need a working channel swap app.state.notifier.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db = db
        app.state.user_store = user_store
        app.state.registrar = registrar
        app.state.sessions = sessions
        app.state.identity_strategies = build_identity_strategies(sessions)
        app.state.notifier = NotificationService(get_settings(), registrar)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        app.state.notifier.close()

    return test_lifespan


def login(client: TestClient, username: str, password: str):
    """POST /api/login and return the response.

    The client's cookie jar is cleared afterwards so one test's session never
    leaks into the next; tests pass the sid explicitly via a Cookie header.
    """
    resp = client.post("/api/login", json={"username": username, "password": password})
    client.cookies.clear()
    return resp


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def session_cookie(sid: str) -> dict[str, str]:
    return {"Cookie": f"sid={sid}"}


def registration_payload(n: int, **overrides) -> dict:
    """Build a valid self-registration body; n keeps e-mail and student number unique."""
    body = {
        "first_name": "Juan",
        "last_name": f"Dela Cruz {n}",
        "email": f"student{n}@example.edu",
        "password": STUDENT_PASSWORD,
        "student_number": f"2024-{n:05d}",
        "year_level": 1,
        "sex": "Male",
        "civil_status": "Single",
        "citizenship": "Filipino",
        "contact_number": f"+63917000{n:04d}",
        "father_name": "Pedro Dela Cruz",
        "mother_name": "Maria Dela Cruz",
        "year_graduated": 2023,
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db(request) -> Generator[Database, None, None]:
    """A fresh database per test function, for store-level unit tests."""
    name = re.sub(r"\W", "_", f"{request.module.__name__}_{request.node.name}")
    database = make_database(f"unit_{name}")
    database.create_all()
    yield database
    database.close()


@pytest.fixture
def user_store(db: Database) -> UserStore:
    return UserStore(db)


@pytest.fixture
def registrar(db: Database) -> RegistrarStore:
    return RegistrarStore(db)


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. One
    database per test module; a small catalog (course BSIS, two subjects) is
    seeded before the client starts.
    """
    db = make_database(f"api_{request.module.__name__.rsplit('.', 1)[-1]}")
    user_store = UserStore(db)
    registrar = RegistrarStore(db)
    sessions = SessionStore(get_settings().session_secret, ":memory:")

    admin_id = user_store.create_user(
        User(username=ADMIN_USERNAME, role="admin", hashed_password=hash_password(ADMIN_PASSWORD))
    )
    token = create_access_token(user_id=admin_id, username=ADMIN_USERNAME, role="admin", expire_seconds=3600)

    course = registrar.create_course(Course(code="BSIS", name="Bachelor of Science in Information System"))
    registrar.create_subject(Subject(code="IS 101", name="Introduction to Computing", units=3, course_id=course.id))
    registrar.create_subject(Subject(code="GE 1", name="Understanding the Self", units=3))

    app.router.lifespan_context = _patch_lifespan(db, user_store, registrar, sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin_id

    sessions.close()
    db.close()
