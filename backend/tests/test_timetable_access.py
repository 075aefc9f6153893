import pytest

from app.core.config import Settings
from app.models.user import UserRole
from app.services.timetable_access import resolve_timetable_access


def test_students_are_routed_to_student_timetable_mode():
    access = resolve_timetable_access("student", "42")

    assert access.mode == "student"
    assert access.student_view_class_id == "42"
    assert access.can_edit is False


@pytest.mark.parametrize(
    ("role", "can_edit"),
    [(UserRole.admin, True), (UserRole.scheduler, True), (UserRole.teacher, False)],
)
def test_staff_see_the_whole_timetable(role, can_edit):
    access = resolve_timetable_access(role, "ignored")

    assert access.mode == "staff"
    assert access.student_view_class_id is None
    assert access.can_edit is can_edit


def test_unknown_role_is_refused():
    with pytest.raises(ValueError):
        resolve_timetable_access("janitor")


def test_cors_origins_accept_comma_separated_values():
    settings = Settings(cors_origins="http://a.test, http://b.test")

    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_commit_attempts_must_be_positive():
    with pytest.raises(ValueError):
        Settings(placement_commit_max_attempts=0)
