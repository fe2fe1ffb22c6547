"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in registrar/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, registrar/, sessions/, or notifications/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """An identity that can log in to the portal.

    For students, username is always the student's e-mail address (lower-cased).
    Usernames are normalized with normalize_username() on every write and
    lookup, so matching is effectively case-insensitive.

    hashed_password holds a bcrypt hash. Legacy rows may still contain a
    plaintext value until `python main.py rehash-passwords` is run; such rows
    can never pass verify_password().
    """

    username: str
    role: str  # "student" | "admin"
    id: int | None = None
    hashed_password: str = ""
    created_at: str | None = None


@dataclass
class LoginAttempt:
    """Append-only audit entry written on every login against a known username."""

    user_id: int
    success: bool
    ip_address: str | None = None
    attempt_time: str = ""  # ISO 8601, set by store on insert
    id: int | None = None


def normalize_username(username: str) -> str:
    return username.strip().lower()
