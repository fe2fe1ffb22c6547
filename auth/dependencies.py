"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Identity is resolved by a list of strategies held on app.state, tried in order:
  1. SessionCookieStrategy -- "sid" cookie set by POST /api/login (web UI).
  2. BearerTokenStrategy  -- Authorization: Bearer <jwt> (API clients, scripts).

Each strategy only answers "which user id is this?". The full User row is then
re-read from the credential store on every request, so role changes and
account deletions take effect on the very next request. Either strategy can be
switched off (SESSION_AUTH_ENABLED / TOKEN_AUTH_ENABLED) without touching the
other. The two differ in revocation: logout destroys the session, but a bearer
token stays valid until it expires or JWT_SECRET is rotated.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_roles(...) wraps get_current_user() and raises HTTP 403 if the role
is not allowed; require_admin is the common case.

Layer rule: no imports from registrar/ or notifications/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from fastapi import HTTPException, Request

from auth.models import User
from auth.tokens import SESSION_COOKIE, decode_access_token
from sessions.store import SessionStore


class IdentityStrategy(Protocol):
    name: str

    def resolve(self, request: Request) -> int | None: ...


class SessionCookieStrategy:
    """Resolve the caller from the server-side session named by the "sid" cookie."""

    name = "session"

    def __init__(self, sessions: SessionStore) -> None:
        self.sessions = sessions

    def resolve(self, request: Request) -> int | None:
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid:
            return None
        return self.sessions.get(sid)


class BearerTokenStrategy:
    """Resolve the caller from a signed JWT in the Authorization header."""

    name = "bearer"

    def resolve(self, request: Request) -> int | None:
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None
        payload = decode_access_token(auth_header[7:])
        if payload is None:
            return None
        return payload["user_id"]


def build_identity_strategies(
    sessions: SessionStore,
    session_enabled: bool = True,
    token_enabled: bool = True,
) -> list[IdentityStrategy]:
    """Return the enabled strategies in priority order (session first)."""
    strategies: list[IdentityStrategy] = []
    if session_enabled:
        strategies.append(SessionCookieStrategy(sessions))
    if token_enabled:
        strategies.append(BearerTokenStrategy())
    return strategies


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request with each enabled strategy.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    user_store = request.app.state.user_store
    for strategy in request.app.state.identity_strategies:
        user_id = strategy.resolve(request)
        if user_id is None:
            continue
        user = user_store.get_by_id(user_id)
        if user is not None:
            return user
    return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_roles(*roles: str) -> Callable[[Request], User]:
    """Build a dependency that allows only the given roles.

    Raises HTTP 401 if unauthenticated, HTTP 403 if the role is not allowed.
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "You do not have permission to perform this action."},
            )
        return user

    return dependency


require_admin = require_roles("admin")
require_student = require_roles("student")
