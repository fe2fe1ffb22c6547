"""
registrar/enrollment.py -- Student status lifecycle.

The status field is a closed set (StudentStatus) with an explicit transition
table. Every status write in registrar/store.py goes through
check_transition(), so an update like graduated -> pending is rejected instead
of silently stored.

    pending      -> enrolled | rejected | not-enrolled
    enrolled     -> active | inactive | graduated | not-enrolled
    active       -> enrolled | inactive | graduated | not-enrolled
    inactive     -> enrolled | active | graduated | not-enrolled
    rejected     -> not-enrolled
    not-enrolled -> pending | enrolled
    graduated    -> (terminal)

Setting a student to the status it already has is always allowed (no-op).
Subject assignment never changes status.
"""

from enum import Enum


class StudentStatus(str, Enum):
    PENDING = "pending"
    ENROLLED = "enrolled"
    REJECTED = "rejected"
    NOT_ENROLLED = "not-enrolled"
    ACTIVE = "active"
    INACTIVE = "inactive"
    GRADUATED = "graduated"


_TRANSITIONS: dict[StudentStatus, frozenset[StudentStatus]] = {
    StudentStatus.PENDING: frozenset({StudentStatus.ENROLLED, StudentStatus.REJECTED, StudentStatus.NOT_ENROLLED}),
    StudentStatus.ENROLLED: frozenset(
        {StudentStatus.ACTIVE, StudentStatus.INACTIVE, StudentStatus.GRADUATED, StudentStatus.NOT_ENROLLED}
    ),
    StudentStatus.ACTIVE: frozenset(
        {StudentStatus.ENROLLED, StudentStatus.INACTIVE, StudentStatus.GRADUATED, StudentStatus.NOT_ENROLLED}
    ),
    StudentStatus.INACTIVE: frozenset(
        {StudentStatus.ENROLLED, StudentStatus.ACTIVE, StudentStatus.GRADUATED, StudentStatus.NOT_ENROLLED}
    ),
    StudentStatus.REJECTED: frozenset({StudentStatus.NOT_ENROLLED}),
    StudentStatus.NOT_ENROLLED: frozenset({StudentStatus.PENDING, StudentStatus.ENROLLED}),
    StudentStatus.GRADUATED: frozenset(),
}


class InvalidTransition(ValueError):
    """Raised when a status change is not in the transition table."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot change status from '{from_status}' to '{to_status}'.")


def can_transition(from_status: str, to_status: str) -> bool:
    """Return True if from_status -> to_status is allowed.

    Unknown status strings are never allowed as a target. An unknown current
    status (legacy data) may only move to pending or not-enrolled.
    """
    try:
        target = StudentStatus(to_status)
    except ValueError:
        return False
    try:
        current = StudentStatus(from_status)
    except ValueError:
        return target in (StudentStatus.PENDING, StudentStatus.NOT_ENROLLED)
    return current == target or target in _TRANSITIONS[current]


def check_transition(from_status: str, to_status: str) -> None:
    """Raise InvalidTransition unless from_status -> to_status is allowed."""
    if not can_transition(from_status, to_status):
        raise InvalidTransition(from_status, to_status)


def allowed_transitions(from_status: str) -> list[str]:
    """Return the statuses reachable from from_status, for UI dropdowns."""
    try:
        current = StudentStatus(from_status)
    except ValueError:
        return [StudentStatus.PENDING.value, StudentStatus.NOT_ENROLLED.value]
    return sorted(s.value for s in _TRANSITIONS[current])
