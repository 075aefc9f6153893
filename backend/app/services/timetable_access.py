from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from app.models.user import UserRole

EDITOR_ROLES = frozenset({UserRole.admin, UserRole.scheduler})


@dataclass(frozen=True)
class TimetableAccess:
    mode: Literal["student", "staff"]
    student_view_class_id: str | None = None
    can_edit: bool = False


def resolve_timetable_access(role: UserRole | str, class_id: str | None = None) -> TimetableAccess:
    """Work out which timetable view a user gets.

    Students only ever see the class they belong to; everybody else sees the
    whole school/term and only admins and schedulers may change it.
    """
    role = UserRole(role)
    if role == UserRole.student:
        return TimetableAccess(mode="student", student_view_class_id=class_id, can_edit=False)
    return TimetableAccess(mode="staff", can_edit=role in EDITOR_ROLES)
