"""
auth/tokens.py -- Password hashing, bearer tokens, and session cookie helpers.

Security design decisions:
  Passwords: bcrypt with a fixed cost factor of 10. The hash string is
       self-describing ($2b$10$<salt><digest>) so verify_password() needs no
       side-channel state. verify_password() never raises: malformed or
       legacy plaintext values simply fail. The _DUMMY_HASH constant enables
       timing equalization in authenticate_user() so response time does not
       reveal whether a username exists [C1].

  Legacy rows: needs_rehash() recognizes values that are not bcrypt hashes.
       They are upgraded only by the explicit `rehash-passwords` CLI pass
       (auth/migrate.py), never silently during login.

  Bearer tokens: python-jose with HS256, signed with JWT_SECRET. Claims are
       sub (username), user_id, role, iat, exp. decode_access_token() returns
       None on any failure. A token issued at T is accepted strictly before
       T + TOKEN_EXPIRE_SECONDS and rejected at or after it. Tokens are not
       revocable: logout destroys the server session only, and revoking every
       outstanding token requires rotating JWT_SECRET.

  Secrets: sourced from core.config.get_settings(). Dev mode generates them,
       production refuses to start without them [M6][M7].

Layer rule: no imports from api/, registrar/, or notifications/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import normalize_username
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("enrollment.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
_BCRYPT_ROUNDS = 10

# $2a$, $2b$ or $2y$, two-digit cost, 22-char salt + 31-char digest.
_BCRYPT_RE = re.compile(r"^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$")

SESSION_COOKIE = "sid"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash (cost 10) of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password fields at 128 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        return False


def needs_rehash(stored: str) -> bool:
    """Return True if the stored value is not a bcrypt hash (e.g. legacy plaintext)."""
    return not _BCRYPT_RE.match(stored or "")


# Timing equalization dummy hash [C1].
_DUMMY_HASH: str = hash_password("enrollment_timing_dummy")


# ---------------------------------------------------------------------------
# Bearer token encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: int,
    username: str,
    role: str,
    expire_seconds: int = 0,
    issued_at: datetime | None = None,
) -> str:
    """Encode a signed JWT carrying the caller's identity.

    Args:
        user_id:        Numeric user ID stored in the DB.
        username:       Username stored as the JWT subject claim.
        role:           "student" or "admin".
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds (24h).
        issued_at:      Issue time. Defaults to now; tests pass a fixed value.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    iat = issued_at or datetime.now(timezone.utc)
    payload = {
        "sub": username,
        "user_id": user_id,
        "role": role,
        "iat": int(iat.timestamp()),
        "exp": int((iat + timedelta(seconds=duration)).timestamp()),
    }
    return jwt.encode(payload, _settings.jwt_secret, algorithm=_ALGORITHM)


def decode_access_token(token: str, now: datetime | None = None) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Expiry is checked here rather than by jose so that the boundary is exact:
    the token is invalid at exp and after it.
    """
    try:
        payload = jwt.decode(
            token,
            _settings.jwt_secret,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        return None
    if "user_id" not in payload or "role" not in payload or "exp" not in payload:
        return None
    current = (now or datetime.now(timezone.utc)).timestamp()
    if current >= payload["exp"]:
        return None
    return payload


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> tuple[User | None, bool]:
    """Check a username/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns (user, ok). user is the looked-up User (None if the username is
    unknown) so the caller can write a LoginAttempt row either way; ok is True
    only when the password verified.
    """
    user = store.get_by_username(normalize_username(username))
    if user is None or not user.hashed_password:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return user, False
    if needs_rehash(user.hashed_password):
        # Legacy plaintext row: refuse, and still spend the bcrypt time.
        verify_password(password, _DUMMY_HASH)
        logger.warning("Login refused for user id=%s: stored password is not hashed", user.id)
        return user, False
    return user, verify_password(password, user.hashed_password)


# ---------------------------------------------------------------------------
# Session cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, sid: str) -> None:
    """Write the opaque session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the server-side session TTL so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=sid,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.session_ttl_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="lax", secure=_settings.secure_cookies)
