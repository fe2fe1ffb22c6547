"""
tests/test_enrollment_transitions.py -- Student status lifecycle rules.
"""

from __future__ import annotations

import pytest

from registrar.enrollment import (
    InvalidTransition,
    StudentStatus,
    allowed_transitions,
    can_transition,
    check_transition,
)


@pytest.mark.parametrize(
    "current,target",
    [
        ("pending", "enrolled"),
        ("pending", "rejected"),
        ("pending", "not-enrolled"),
        ("enrolled", "active"),
        ("enrolled", "graduated"),
        ("active", "inactive"),
        ("inactive", "enrolled"),
        ("rejected", "not-enrolled"),
        ("not-enrolled", "pending"),
        ("not-enrolled", "enrolled"),
    ],
)
def test_allowed(current: str, target: str) -> None:
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("pending", "graduated"),
        ("pending", "active"),
        ("rejected", "enrolled"),
        ("graduated", "pending"),
        ("graduated", "enrolled"),
        ("enrolled", "pending"),
    ],
)
def test_refused(current: str, target: str) -> None:
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransition) as exc_info:
        check_transition(current, target)
    assert exc_info.value.from_status == current
    assert exc_info.value.to_status == target


@pytest.mark.parametrize("status", [s.value for s in StudentStatus])
def test_same_status_is_noop(status: str) -> None:
    assert can_transition(status, status)


def test_graduated_is_terminal() -> None:
    assert allowed_transitions("graduated") == []


def test_unknown_target_refused() -> None:
    assert not can_transition("pending", "expelled")


def test_unknown_current_status_can_be_reset() -> None:
    """Legacy rows with an unrecognized status may only be reset."""
    assert can_transition("legacy-value", "pending")
    assert can_transition("legacy-value", "not-enrolled")
    assert not can_transition("legacy-value", "enrolled")
    assert allowed_transitions("legacy-value") == ["pending", "not-enrolled"]


def test_invalid_transition_is_value_error() -> None:
    assert issubclass(InvalidTransition, ValueError)
