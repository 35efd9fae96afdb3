"""Team roles, elevated-access checks and YPP contact eligibility."""

from __future__ import annotations

from datetime import date

# ---------------------------------------------------------------------------
# Team roles – higher integer means more privilege
# ---------------------------------------------------------------------------
ROLE_HIERARCHY: dict[str, int] = {
    "admin": 3,  # legacy role, maps to lead_mentor
    "lead_mentor": 3,
    "mentor": 2,
    "student": 1,
}

ELEVATED_ROLES = frozenset({"admin", "lead_mentor", "mentor"})


class PermissionDeniedError(Exception):
    """Raised when a non-elevated role reaches a mentor-only surface."""


def is_mentor_role(role: str | None) -> bool:
    """Return ``True`` for roles allowed to review safety records."""
    return role in ELEVATED_ROLES


def require_elevated_role(role: str | None, action: str) -> None:
    """Raise :class:`PermissionDeniedError` unless *role* is a mentor role."""
    if not is_mentor_role(role):
        raise PermissionDeniedError(f"{action} requires a mentor role (got {role!r})")


def calculate_age(birthdate: date, today: date | None = None) -> int:
    """Whole years between *birthdate* and *today*."""
    today = today or date.today()
    age = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        age -= 1
    return age


def can_be_ypp_contact(role: str, birthdate: date | None, today: date | None = None) -> bool:
    """A YPP contact must be an adult mentor.

    Members without a recorded birthdate are accepted on role alone; the
    team roster requires mentors to be adults when they are added.
    """
    if not is_mentor_role(role):
        return False
    if birthdate is None:
        return True
    return calculate_age(birthdate, today) >= 18
