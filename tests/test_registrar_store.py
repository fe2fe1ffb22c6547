"""
tests/test_registrar_store.py -- Unit tests for registrar/store.py.

Each test gets its own named in-memory database (see conftest.db), so ids
start at 1 and there is no cross-test state.
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.tokens import hash_password
from registrar.enrollment import InvalidTransition
from registrar.models import AdmissionRecord, Course, Notification, Student, Subject
from registrar.seed import DEFAULT_COURSES, DEFAULT_SUBJECTS, seed_catalog
from registrar.store import EmailAlreadyRegistered


def _register(registrar, n: int, **student_fields):
    fields = {
        "user_id": 0,
        "first_name": "Ana",
        "last_name": f"Reyes{n}",
        "email": f"ana{n}@example.edu",
        "student_number": f"S-{n}",
        "year_level": 1,
    }
    fields.update(student_fields)
    user = User(username=fields["email"], role="student", hashed_password=hash_password("pw1234"))
    return registrar.register_student(user, Student(**fields))


class TestRegistration:
    def test_creates_user_and_pending_student(self, registrar, user_store) -> None:
        student = _register(registrar, 1, status="enrolled", admission=AdmissionRecord(sex="Female", year_graduated=2023))
        assert student.id is not None
        assert student.status == "pending"
        assert student.admission.sex == "Female"
        assert student.admission.year_graduated == 2023
        assert student.created_at

        user = user_store.get_by_id(student.user_id)
        assert user.username == "ana1@example.edu"
        assert user.role == "student"

    def test_email_is_normalized(self, registrar, user_store) -> None:
        student = _register(registrar, 1, email="  Ana1@Example.EDU")
        assert student.email == "ana1@example.edu"
        assert user_store.get_by_username("ana1@example.edu") is not None

    def test_duplicate_email_rejected_without_writes(self, registrar, user_store) -> None:
        _register(registrar, 1)
        with pytest.raises(EmailAlreadyRegistered):
            _register(registrar, 2, email="ANA1@example.edu")
        assert len(user_store.list_users()) == 1
        assert len(registrar.list_students()) == 1

    def test_duplicate_student_number_rolls_back_user(self, registrar, user_store) -> None:
        """The user insert is undone when the student insert fails."""
        _register(registrar, 1)
        with pytest.raises(IntegrityError):
            _register(registrar, 2, student_number="S-1")
        assert user_store.get_by_username("ana2@example.edu") is None

    def test_create_student_for_existing_user_forces_pending(self, registrar, user_store) -> None:
        user_id = user_store.create_user(User(username="ana9@example.edu", role="student", hashed_password="x"))
        student = registrar.create_student(
            Student(
                user_id=user_id,
                first_name="Ana",
                last_name="Reyes9",
                email="Ana9@Example.edu",
                student_number="S-9",
                year_level=2,
                status="graduated",
            )
        )
        assert student.status == "pending"
        assert student.user_id == user_id
        assert student.email == "ana9@example.edu"
        assert registrar.get_student_by_user_id(user_id).id == student.id


class TestStudentQueries:
    def test_list_filters(self, registrar) -> None:
        a = _register(registrar, 1, year_level=1, section="A", course_id=1)
        _register(registrar, 2, year_level=2, section="B", course_id=2)
        registrar.set_status(a.id, "enrolled")

        assert [s.id for s in registrar.list_students(year_level=1)] == [a.id]
        assert [s.id for s in registrar.list_students(section="A")] == [a.id]
        assert [s.id for s in registrar.list_students(status="enrolled")] == [a.id]
        assert [s.id for s in registrar.list_students(course_id=1)] == [a.id]
        assert len(registrar.list_students()) == 2

    def test_get_by_user_id(self, registrar) -> None:
        student = _register(registrar, 1)
        assert registrar.get_student_by_user_id(student.user_id).id == student.id
        assert registrar.get_student_by_user_id(9999) is None

    def test_get_students_by_ids_skips_unknown(self, registrar) -> None:
        a = _register(registrar, 1)
        assert [s.id for s in registrar.get_students_by_ids([a.id, 999])] == [a.id]
        assert registrar.get_students_by_ids([]) == []


class TestStudentUpdates:
    def test_partial_update(self, registrar) -> None:
        student = _register(registrar, 1)
        updated = registrar.update_student(student.id, section="BSIS-1A", contact_number="+639170000000")
        assert updated.section == "BSIS-1A"
        assert updated.admission.contact_number == "+639170000000"
        assert updated.first_name == "Ana"

    def test_unknown_field_rejected(self, registrar) -> None:
        student = _register(registrar, 1)
        with pytest.raises(ValueError):
            registrar.update_student(student.id, user_id=99)

    def test_missing_student(self, registrar) -> None:
        assert registrar.update_student(999, section="A") is None

    def test_email_change_renames_user(self, registrar, user_store) -> None:
        student = _register(registrar, 1)
        registrar.update_student(student.id, email="new@example.edu")
        assert user_store.get_by_id(student.user_id).username == "new@example.edu"

    def test_invalid_transition_writes_nothing(self, registrar) -> None:
        student = _register(registrar, 1)
        with pytest.raises(InvalidTransition):
            registrar.update_student(student.id, status="graduated", section="Z")
        reloaded = registrar.get_student(student.id)
        assert reloaded.status == "pending"
        assert reloaded.section is None

    def test_status_lifecycle(self, registrar) -> None:
        student = _register(registrar, 1)
        assert registrar.set_status(student.id, "enrolled").status == "enrolled"
        assert registrar.set_status(student.id, "graduated").status == "graduated"
        with pytest.raises(InvalidTransition):
            registrar.set_status(student.id, "enrolled")

    def test_status_change_keeps_enrollments(self, registrar) -> None:
        student = _register(registrar, 1)
        subject = registrar.create_subject(Subject(code="IS 101", name="Intro", units=3))
        registrar.assign_subjects(student.id, [subject.id])
        registrar.set_status(student.id, "rejected")
        assert len(registrar.list_enrollments(student.id)) == 1


class TestDeleteStudent:
    def test_cascade(self, registrar, user_store) -> None:
        student = _register(registrar, 1)
        subject = registrar.create_subject(Subject(code="IS 101", name="Intro", units=3))
        registrar.assign_subjects(student.id, [subject.id])

        assert registrar.delete_student(student.id) == student.user_id
        assert registrar.get_student(student.id) is None
        assert registrar.list_enrollments(student.id) == []
        assert user_store.get_by_id(student.user_id) is None

    def test_missing(self, registrar) -> None:
        assert registrar.delete_student(999) is None


class TestEnrollments:
    def _subjects(self, registrar) -> list[Subject]:
        return [
            registrar.create_subject(Subject(code="IS 101", name="Intro", units=3)),
            registrar.create_subject(Subject(code="PE 1", name="Fitness", units=2)),
            registrar.create_subject(Subject(code="GE 1", name="Self", units=3)),
        ]

    def test_assign_is_additive(self, registrar) -> None:
        student = _register(registrar, 1)
        s1, s2, _ = self._subjects(registrar)
        registrar.assign_subjects(student.id, [s1.id])
        enrollments = registrar.assign_subjects(student.id, [s2.id])
        assert [e.subject_id for e in enrollments] == [s1.id, s2.id]
        assert all(e.status == "enrolled" for e in enrollments)

    def test_replace_is_full_replace(self, registrar) -> None:
        student = _register(registrar, 1)
        s1, s2, s3 = self._subjects(registrar)
        registrar.assign_subjects(student.id, [s1.id, s2.id])
        enrollments = registrar.replace_subjects(student.id, [s3.id, s3.id])
        assert [e.subject_id for e in enrollments] == [s3.id]

    def test_replace_with_empty_clears(self, registrar) -> None:
        student = _register(registrar, 1)
        s1, _, _ = self._subjects(registrar)
        registrar.assign_subjects(student.id, [s1.id])
        assert registrar.replace_subjects(student.id, []) == []

    def test_total_units(self, registrar) -> None:
        student = _register(registrar, 1)
        s1, s2, _ = self._subjects(registrar)
        assert registrar.total_units(student.id) == 0
        registrar.assign_subjects(student.id, [s1.id, s2.id])
        assert registrar.total_units(student.id) == 5
        assert [s.code for s in registrar.list_enrolled_subjects(student.id)] == ["IS 101", "PE 1"]

    def test_delete_subject_removes_its_enrollments(self, registrar) -> None:
        student = _register(registrar, 1)
        s1, s2, _ = self._subjects(registrar)
        registrar.assign_subjects(student.id, [s1.id, s2.id])
        assert registrar.delete_subject(s1.id)
        assert [e.subject_id for e in registrar.list_enrollments(student.id)] == [s2.id]
        assert not registrar.delete_subject(s1.id)


class TestCatalog:
    def test_course_crud(self, registrar) -> None:
        course = registrar.create_course(Course(code="BSIS", name="Information Systems"))
        assert registrar.get_course(course.id).name == "Information Systems"
        assert registrar.update_course(course.id, name="Info Sys").name == "Info Sys"
        assert registrar.update_course(999, name="x") is None
        assert registrar.delete_course(course.id)
        assert registrar.get_course(course.id) is None

    def test_duplicate_course_code(self, registrar) -> None:
        registrar.create_course(Course(code="BSIS", name="A"))
        with pytest.raises(IntegrityError):
            registrar.create_course(Course(code="BSIS", name="B"))

    def test_subject_filters(self, registrar) -> None:
        registrar.create_subject(Subject(code="IS 101", name="Intro", units=3, course_id=1, year_level=1))
        registrar.create_subject(Subject(code="IS 201", name="Data", units=3, course_id=1, year_level=2))
        registrar.create_subject(Subject(code="GE 1", name="Self", units=3))
        assert [s.code for s in registrar.list_subjects(course_id=1)] == ["IS 101", "IS 201"]
        assert [s.code for s in registrar.list_subjects(course_id=1, year_level=2)] == ["IS 201"]
        assert len(registrar.list_subjects()) == 3

    def test_existing_subject_ids(self, registrar) -> None:
        s = registrar.create_subject(Subject(code="IS 101", name="Intro", units=3))
        assert registrar.existing_subject_ids([s.id, 404]) == {s.id}

    def test_seed_is_idempotent(self, registrar) -> None:
        assert seed_catalog(registrar) == (len(DEFAULT_COURSES), len(DEFAULT_SUBJECTS))
        assert seed_catalog(registrar) == (0, 0)
        assert len(registrar.list_courses()) == len(DEFAULT_COURSES)
        bsis = next(c for c in registrar.list_courses() if c.code == "BSIS")
        assert {s.code for s in registrar.list_subjects(course_id=bsis.id)} == {"IS 101", "IS 102"}


class TestNotificationsLog:
    def test_newest_first(self, registrar) -> None:
        registrar.log_notification(Notification(type="email", message="first", status="sent", sent_by=1))
        registrar.log_notification(Notification(type="sms", message="second", status="failed", sent_by=1))
        history = registrar.list_notifications()
        assert [n.message for n in history] == ["second", "first"]
        assert history[0].sent_at
        assert len(registrar.list_notifications(limit=1)) == 1


class TestReports:
    def test_dashboard_stats(self, registrar) -> None:
        a = _register(registrar, 1)
        b = _register(registrar, 2)
        _register(registrar, 3)
        registrar.set_status(a.id, "enrolled")
        registrar.set_status(b.id, "rejected")
        registrar.create_course(Course(code="BSIS", name="IS"))

        stats = registrar.get_dashboard_stats()
        assert stats == {
            "total_students": 3,
            "pending": 1,
            "enrolled": 1,
            "rejected": 1,
            "total_courses": 1,
            "total_subjects": 0,
        }

    def test_count_by_groups_blanks_as_unspecified(self, registrar) -> None:
        _register(registrar, 1, admission=AdmissionRecord(sex="Female"))
        _register(registrar, 2, admission=AdmissionRecord(sex="Female"))
        _register(registrar, 3)
        assert registrar.count_students_by("sex") == {"Female": 2, "Unspecified": 1}
        assert registrar.count_students_by("year_level") == {"1": 3}

    def test_course_analytics(self, registrar) -> None:
        course = registrar.create_course(Course(code="BSIS", name="IS"))
        registrar.create_course(Course(code="BPED", name="PE"))
        registrar.create_subject(Subject(code="IS 101", name="Intro", units=3, course_id=course.id))
        _register(registrar, 1, course_id=course.id)

        rows = {r["code"]: r for r in registrar.get_course_analytics()}
        assert rows["BSIS"]["student_count"] == 1
        assert rows["BSIS"]["subject_count"] == 1
        assert rows["BPED"]["student_count"] == 0

    def test_enrollment_trends(self, registrar) -> None:
        _register(registrar, 1)
        _register(registrar, 2)
        trends = registrar.get_enrollment_trends()
        assert len(trends) == 1
        assert trends[0]["registrations"] == 2
        assert len(trends[0]["month"]) == 7
