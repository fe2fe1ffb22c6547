"""
api/routes/auth.py -- Login, logout and self-service account endpoints.

Routes:
  POST /api/login          -- password login; sets session cookie, returns bearer token
  POST /api/logout         -- destroys the server session, clears the cookie
  GET  /api/user           -- current identity (+ linked Student for role "student")
  PUT  /api/user/password  -- change own password (current password required)
  PUT  /api/user/profile   -- student edits own contact number / address / avatar

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Every login against an existing username writes a LoginAttempt row.
  Logout ends the session only. Bearer tokens already issued stay valid until
  they expire; there is no per-token revocation.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    CurrentUserResponse,
    ErrorDetail,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordChange,
    ProfileUpdate,
    StudentResponse,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import (
    SESSION_COOKIE,
    authenticate_user,
    clear_session_cookie,
    create_access_token,
    hash_password,
    set_session_cookie,
    verify_password,
)
from core.config import get_settings
from registrar.store import RegistrarStore
from sessions.store import SessionStore

logger = logging.getLogger("enrollment.auth")

_settings = get_settings()

# Auth policy:
# - POST /api/login:         public -- login endpoint must be unauthenticated
# - POST /api/logout:        public -- destroying an unknown session is a no-op
# - GET  /api/user:          requires auth (get_current_user)
# - PUT  /api/user/password: requires auth (get_current_user)
# - PUT  /api/user/profile:  requires auth; only accounts with a Student record
router = APIRouter()


def _current_user_response(user: User, registrar: RegistrarStore) -> CurrentUserResponse:
    student = registrar.get_student_by_user_id(user.id) if user.role == "student" else None
    return CurrentUserResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        student=StudentResponse.from_student(student) if student else None,
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password.

    On success: starts a server session (cookie "sid") when session auth is
    enabled, and returns a bearer token when token auth is enabled.

    Returns the same generic error for wrong username and wrong password
    ("bad_credentials") to avoid leaking username existence information.
    """
    user_store: UserStore = request.app.state.user_store
    user, ok = authenticate_user(user_store, body.username, body.password)
    client_ip = request.client.host if request.client else None
    if user is not None:
        user_store.record_login_attempt(user.id, ok, client_ip)

    if not ok:
        logger.info("Failed login for %r from %s", body.username, client_ip)
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    token = None
    if _settings.token_auth_enabled:
        token = create_access_token(user.id, user.username, user.role)
    payload = LoginResponse(
        user=_current_user_response(user, request.app.state.registrar),
        access_token=token,
        expires_in=_settings.token_expire_seconds,
    )
    resp = JSONResponse(status_code=200, content=payload.model_dump())
    if _settings.session_auth_enabled:
        sessions: SessionStore = request.app.state.sessions
        set_session_cookie(resp, sessions.create(user.id))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    logger.info("User id=%s logged in from %s", user.id, client_ip)
    return resp


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Destroy the caller's server session and clear the cookie."""
    sid = request.cookies.get(SESSION_COOKIE)
    if sid:
        request.app.state.sessions.destroy(sid)
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/user", response_model=CurrentUserResponse)
def current_user(request: Request, user: User = Depends(get_current_user)) -> CurrentUserResponse:
    """Return the caller's identity, merged with their Student record if they have one."""
    return _current_user_response(user, request.app.state.registrar)


@router.put("/user/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChange,
    user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change the caller's own password. The current password must verify.

    Every server session of the account ends. A caller who came in on a
    session cookie is handed a fresh one; bearer tokens stay valid until expiry.
    """
    if not verify_password(body.current_password, user.hashed_password):
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_password", message="Current password is incorrect.").model_dump(),
        )
    user_store: UserStore = request.app.state.user_store
    user_store.update_password(user.id, hash_password(body.new_password))
    sessions: SessionStore = request.app.state.sessions
    ended = sessions.destroy_for_user(user.id)
    resp = JSONResponse(content=MessageResponse(message="Password updated.").model_dump())
    if request.cookies.get(SESSION_COOKIE):
        set_session_cookie(resp, sessions.create(user.id))
    logger.info("User id=%s changed password; ended %d session(s)", user.id, ended)
    return resp


@router.put("/user/profile", response_model=StudentResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
):
    """Let a student edit their own contact number, permanent address and avatar."""
    registrar: RegistrarStore = request.app.state.registrar
    student = registrar.get_student_by_user_id(user.id)
    if student is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message="No student record for this account.").model_dump(),
        )
    updated = registrar.update_student(student.id, **body.model_dump(exclude_unset=True))
    return StudentResponse.from_student(updated)
