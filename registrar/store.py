"""
registrar/store.py -- SQLAlchemy-backed persistence layer for the registrar.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in registrar/models.py
remain the authoritative domain representation.

Pattern: Repository + Data Mapper. RegistrarStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route handlers
never touch SQL directly.

Multi-step writes run inside one engine.begin() transaction and roll back as a
unit if any step fails:
  register_student  -- users row + students row
  delete_student    -- enrollments -> student -> user
  replace_subjects  -- delete all enrollments for the student, insert new set
  update_student    -- status transition check + student row + username sync

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = RegistrarStore(db)
    student = store.register_student(user, student)     # status forced to pending
    store.set_status(student.id, "enrolled")
    store.replace_subjects(student.id, [1, 2, 3])
    store.total_units(student.id)
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Table, Text, func, select

from auth.models import User, normalize_username
from auth.store import users_table
from core.database import Database, metadata
from registrar.enrollment import StudentStatus, check_transition
from registrar.models import (
    ADMISSION_FIELDS,
    ADMISSION_INT_FIELDS,
    AdmissionRecord,
    Course,
    Enrollment,
    Notification,
    Student,
    Subject,
)

logger = logging.getLogger("enrollment.registrar")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_courses = Table(
    "courses",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(50), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
)

_subjects = Table(
    "subjects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", String(50), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("units", Integer, nullable=False),
    Column("schedule", Text, nullable=False, server_default=""),
    Column("instructor", String(255), nullable=False, server_default=""),
    Column("course_id", Integer),  # advisory, not a foreign key
    Column("year_level", Integer, nullable=False, server_default="1"),
)

_admission_columns = [
    Column(name, Integer, server_default="0") if name in ADMISSION_INT_FIELDS else Column(name, Text, server_default="")
    for name in ADMISSION_FIELDS
]

_students = Table(
    "students",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, unique=True),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("student_number", String(50), nullable=False, unique=True),
    Column("course_id", Integer),
    Column("year_level", Integer, nullable=False),
    Column("status", String(20), nullable=False, server_default=StudentStatus.PENDING.value),
    Column("section", String(50)),
    Column("avatar", Text),
    Column("created_at", String(32), nullable=False),
    *_admission_columns,
)

_enrollments = Table(
    "enrollments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("student_id", Integer, nullable=False, index=True),
    Column("subject_id", Integer, nullable=False),
    Column("status", String(20), nullable=False, server_default="enrolled"),
)

_notifications = Table(
    "notifications",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", String(10), nullable=False),
    Column("subject", String(255)),
    Column("message", Text, nullable=False),
    Column("status", String(10), nullable=False),
    Column("sent_by", Integer, nullable=False),
    Column("recipient_count", Integer, nullable=False, server_default="0"),
    Column("sent_at", String(32), nullable=False),
)

# Columns an admin (or a student editing their own profile) may change.
STUDENT_MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"first_name", "last_name", "email", "student_number", "course_id", "year_level", "status", "section", "avatar"}
) | frozenset(ADMISSION_FIELDS)

_COURSE_FIELDS = frozenset({"code", "name", "description"})
_SUBJECT_FIELDS = frozenset({"code", "name", "units", "schedule", "instructor", "course_id", "year_level"})


class EmailAlreadyRegistered(ValueError):
    """Raised by register_student when the e-mail is already a username."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_fields(fields: dict, allowed: frozenset[str]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown field(s): {', '.join(sorted(unknown))}")


def _student_values(student: Student) -> dict:
    values = {
        "user_id": student.user_id,
        "first_name": student.first_name,
        "last_name": student.last_name,
        "email": normalize_username(student.email),
        "student_number": student.student_number,
        "course_id": student.course_id,
        "year_level": student.year_level,
        "status": StudentStatus.PENDING.value,
        "section": student.section,
        "avatar": student.avatar,
        "created_at": _now_iso(),
    }
    values.update(asdict(student.admission))
    return values


def _fetch_student_row(conn, student_id: int):
    return conn.execute(_students.select().where(_students.c.id == student_id)).fetchone()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RegistrarStore:
    def __init__(self, db: Database) -> None:
        self.db = db
        self.engine = db.engine
        db.create_all()

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------

    def register_student(self, user: User, student: Student) -> Student:
        """Create the owning User and the Student in one transaction.

        The user's username is the student's normalized e-mail and its role is
        always "student". Any status on the incoming Student is ignored: new
        records start at "pending".

        Raises EmailAlreadyRegistered if the e-mail is taken as a username, and
        sqlalchemy.exc.IntegrityError on any other unique-constraint clash
        (e.g. student_number). Nothing is written in either case.
        """
        username = normalize_username(student.email)
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(users_table.c.id).where(users_table.c.username == username)
            ).first()
            if exists is not None:
                raise EmailAlreadyRegistered(username)
            user_id = conn.execute(
                users_table.insert().values(
                    username=username,
                    password=user.hashed_password,
                    role="student",
                    created_at=_now_iso(),
                )
            ).inserted_primary_key[0]
            student.user_id = user_id
            student_id = conn.execute(_students.insert().values(**_student_values(student))).inserted_primary_key[0]
            row = _fetch_student_row(conn, student_id)
        logger.info("Registered student id=%s (user id=%s)", student_id, user_id)
        return _row_to_student(row)

    def create_student(self, student: Student) -> Student:
        """Insert a Student for an existing user. Status is forced to "pending"."""
        with self.engine.begin() as conn:
            student_id = conn.execute(_students.insert().values(**_student_values(student))).inserted_primary_key[0]
            row = _fetch_student_row(conn, student_id)
        return _row_to_student(row)

    def get_student(self, student_id: int) -> Optional[Student]:
        """Fetch a single student by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = _fetch_student_row(conn, student_id)
        return _row_to_student(row) if row is not None else None

    def get_student_by_user_id(self, user_id: int) -> Optional[Student]:
        with self.engine.connect() as conn:
            row = conn.execute(_students.select().where(_students.c.user_id == user_id)).fetchone()
        return _row_to_student(row) if row is not None else None

    def list_students(
        self,
        year_level: Optional[int] = None,
        section: Optional[str] = None,
        status: Optional[str] = None,
        course_id: Optional[int] = None,
    ) -> list[Student]:
        """Return students matching every given filter, ordered by last name then first name."""
        stmt = _students.select()
        if year_level is not None:
            stmt = stmt.where(_students.c.year_level == year_level)
        if section is not None:
            stmt = stmt.where(_students.c.section == section)
        if status is not None:
            stmt = stmt.where(_students.c.status == status)
        if course_id is not None:
            stmt = stmt.where(_students.c.course_id == course_id)
        stmt = stmt.order_by(_students.c.last_name, _students.c.first_name, _students.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_student(r) for r in rows]

    def get_students_by_ids(self, student_ids: list[int]) -> list[Student]:
        if not student_ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                _students.select().where(_students.c.id.in_(student_ids)).order_by(_students.c.id)
            ).fetchall()
        return [_row_to_student(r) for r in rows]

    def update_student(self, student_id: int, **fields) -> Optional[Student]:
        """Update any subset of STUDENT_MUTABLE_FIELDS on a student.

        A status change is checked against the transition table and raises
        registrar.enrollment.InvalidTransition if not allowed. Changing the
        e-mail also renames the owning user so username == email keeps holding.

        Returns the updated Student, or None if student_id was not found.
        Raises sqlalchemy.exc.IntegrityError on a unique-constraint clash.
        """
        _check_fields(fields, STUDENT_MUTABLE_FIELDS)
        if "email" in fields:
            fields["email"] = normalize_username(fields["email"])
        with self.engine.begin() as conn:
            row = _fetch_student_row(conn, student_id)
            if row is None:
                return None
            if "status" in fields:
                check_transition(row.status, fields["status"])
            if fields:
                conn.execute(_students.update().where(_students.c.id == student_id).values(**fields))
            if "email" in fields and fields["email"] != row.email:
                conn.execute(
                    users_table.update().where(users_table.c.id == row.user_id).values(username=fields["email"])
                )
            updated = _fetch_student_row(conn, student_id)
        if "status" in fields and fields["status"] != row.status:
            logger.info("Student id=%s status %s -> %s", student_id, row.status, fields["status"])
        return _row_to_student(updated)

    def set_status(self, student_id: int, status: str) -> Optional[Student]:
        """Approve, reject, or otherwise move a student along the status lifecycle.

        Does not touch the student's Enrollment rows.
        """
        return self.update_student(student_id, status=status)

    def delete_student(self, student_id: int) -> Optional[int]:
        """Delete a student's enrollments, the student, and its owning user, atomically.

        Returns the deleted user's id (so callers can end its sessions), or
        None if student_id was not found.
        """
        with self.engine.begin() as conn:
            row = _fetch_student_row(conn, student_id)
            if row is None:
                return None
            conn.execute(_enrollments.delete().where(_enrollments.c.student_id == student_id))
            conn.execute(_students.delete().where(_students.c.id == student_id))
            conn.execute(users_table.delete().where(users_table.c.id == row.user_id))
        logger.info("Deleted student id=%s and user id=%s", student_id, row.user_id)
        return row.user_id

    # ------------------------------------------------------------------
    # Enrollments
    # ------------------------------------------------------------------

    def assign_subjects(self, student_id: int, subject_ids: list[int]) -> list[Enrollment]:
        """Add one "enrolled" Enrollment per subject id.

        Additive: existing rows are kept and duplicates are not checked. Use
        replace_subjects() for the "manage subjects" full-replace flow.
        """
        with self.engine.begin() as conn:
            for subject_id in subject_ids:
                conn.execute(_enrollments.insert().values(student_id=student_id, subject_id=subject_id))
        return self.list_enrollments(student_id)

    def replace_subjects(self, student_id: int, subject_ids: list[int]) -> list[Enrollment]:
        """Replace the student's whole Enrollment set with subject_ids in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(_enrollments.delete().where(_enrollments.c.student_id == student_id))
            for subject_id in dict.fromkeys(subject_ids):
                conn.execute(_enrollments.insert().values(student_id=student_id, subject_id=subject_id))
        return self.list_enrollments(student_id)

    def list_enrollments(self, student_id: int) -> list[Enrollment]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _enrollments.select().where(_enrollments.c.student_id == student_id).order_by(_enrollments.c.id)
            ).fetchall()
        return [_row_to_enrollment(r) for r in rows]

    def list_enrolled_subjects(self, student_id: int) -> list[Subject]:
        """Return the Subjects joined through the student's current Enrollments."""
        stmt = (
            select(_subjects)
            .select_from(_enrollments.join(_subjects, _enrollments.c.subject_id == _subjects.c.id))
            .where(_enrollments.c.student_id == student_id)
            .order_by(_enrollments.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_subject(r) for r in rows]

    def total_units(self, student_id: int) -> int:
        """Sum of units over the student's enrolled subjects. 0 when there are none."""
        stmt = (
            select(func.coalesce(func.sum(_subjects.c.units), 0))
            .select_from(_enrollments.join(_subjects, _enrollments.c.subject_id == _subjects.c.id))
            .where(_enrollments.c.student_id == student_id)
        )
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar() or 0)

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def create_course(self, course: Course) -> Course:
        """Insert a course. Raises sqlalchemy.exc.IntegrityError on duplicate code."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _courses.insert().values(code=course.code, name=course.name, description=course.description)
            )
            conn.commit()
        course.id = result.inserted_primary_key[0]
        return course

    def get_course(self, course_id: int) -> Optional[Course]:
        with self.engine.connect() as conn:
            row = conn.execute(_courses.select().where(_courses.c.id == course_id)).fetchone()
        return _row_to_course(row) if row is not None else None

    def list_courses(self) -> list[Course]:
        """Return all courses ordered by code."""
        with self.engine.connect() as conn:
            rows = conn.execute(_courses.select().order_by(_courses.c.code)).fetchall()
        return [_row_to_course(r) for r in rows]

    def update_course(self, course_id: int, **fields) -> Optional[Course]:
        _check_fields(fields, _COURSE_FIELDS)
        with self.engine.connect() as conn:
            if fields:
                result = conn.execute(_courses.update().where(_courses.c.id == course_id).values(**fields))
                conn.commit()
                if result.rowcount == 0:
                    return None
        return self.get_course(course_id)

    def delete_course(self, course_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_courses.delete().where(_courses.c.id == course_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------------

    def create_subject(self, subject: Subject) -> Subject:
        """Insert a subject. Raises sqlalchemy.exc.IntegrityError on duplicate code."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _subjects.insert().values(
                    code=subject.code,
                    name=subject.name,
                    units=subject.units,
                    schedule=subject.schedule,
                    instructor=subject.instructor,
                    course_id=subject.course_id,
                    year_level=subject.year_level,
                )
            )
            conn.commit()
        subject.id = result.inserted_primary_key[0]
        return subject

    def get_subject(self, subject_id: int) -> Optional[Subject]:
        with self.engine.connect() as conn:
            row = conn.execute(_subjects.select().where(_subjects.c.id == subject_id)).fetchone()
        return _row_to_subject(row) if row is not None else None

    def list_subjects(self, course_id: Optional[int] = None, year_level: Optional[int] = None) -> list[Subject]:
        """Return subjects, optionally filtered by course and year level, ordered by code."""
        stmt = _subjects.select()
        if course_id is not None:
            stmt = stmt.where(_subjects.c.course_id == course_id)
        if year_level is not None:
            stmt = stmt.where(_subjects.c.year_level == year_level)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_subjects.c.code)).fetchall()
        return [_row_to_subject(r) for r in rows]

    def existing_subject_ids(self, subject_ids: list[int]) -> set[int]:
        if not subject_ids:
            return set()
        with self.engine.connect() as conn:
            rows = conn.execute(select(_subjects.c.id).where(_subjects.c.id.in_(subject_ids))).fetchall()
        return {r.id for r in rows}

    def update_subject(self, subject_id: int, **fields) -> Optional[Subject]:
        _check_fields(fields, _SUBJECT_FIELDS)
        with self.engine.connect() as conn:
            if fields:
                result = conn.execute(_subjects.update().where(_subjects.c.id == subject_id).values(**fields))
                conn.commit()
                if result.rowcount == 0:
                    return None
        return self.get_subject(subject_id)

    def delete_subject(self, subject_id: int) -> bool:
        """Delete a subject and every Enrollment pointing at it."""
        with self.engine.begin() as conn:
            conn.execute(_enrollments.delete().where(_enrollments.c.subject_id == subject_id))
            result = conn.execute(_subjects.delete().where(_subjects.c.id == subject_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Notifications (append-only audit log)
    # ------------------------------------------------------------------

    def log_notification(self, notification: Notification) -> Notification:
        sent_at = notification.sent_at or _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _notifications.insert().values(
                    type=notification.type,
                    subject=notification.subject,
                    message=notification.message,
                    status=notification.status,
                    sent_by=notification.sent_by,
                    recipient_count=notification.recipient_count,
                    sent_at=sent_at,
                )
            )
            conn.commit()
        notification.id = result.inserted_primary_key[0]
        notification.sent_at = sent_at
        return notification

    def list_notifications(self, limit: int = 100) -> list[Notification]:
        """Return the most recent notifications, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _notifications.select().order_by(_notifications.c.id.desc()).limit(limit)
            ).fetchall()
        return [_row_to_notification(r) for r in rows]

    # ------------------------------------------------------------------
    # Reports (read-only aggregations)
    # ------------------------------------------------------------------

    def count_students_by(self, column: str) -> dict[str, int]:
        """Return {value: count} grouped by one students column.

        Empty or NULL values are reported under "Unspecified".
        """
        col = _students.c[column]
        with self.engine.connect() as conn:
            rows = conn.execute(select(col, func.count().label("n")).group_by(col)).fetchall()
        counts: dict[str, int] = {}
        for value, n in rows:
            key = str(value) if value not in (None, "") else "Unspecified"
            counts[key] = counts.get(key, 0) + n
        return counts

    def get_dashboard_stats(self) -> dict[str, int]:
        by_status = self.count_students_by("status")
        with self.engine.connect() as conn:
            total_courses = conn.execute(select(func.count()).select_from(_courses)).scalar() or 0
            total_subjects = conn.execute(select(func.count()).select_from(_subjects)).scalar() or 0
        return {
            "total_students": sum(by_status.values()),
            "pending": by_status.get(StudentStatus.PENDING.value, 0),
            "enrolled": by_status.get(StudentStatus.ENROLLED.value, 0),
            "rejected": by_status.get(StudentStatus.REJECTED.value, 0),
            "total_courses": total_courses,
            "total_subjects": total_subjects,
        }

    def get_course_analytics(self) -> list[dict]:
        """Return one entry per course with its student and subject counts.

        Uses two grouped counts joined in Python rather than one query per course.
        """
        with self.engine.connect() as conn:
            students_per = dict(
                conn.execute(
                    select(_students.c.course_id, func.count()).group_by(_students.c.course_id)
                ).fetchall()
            )
            subjects_per = dict(
                conn.execute(
                    select(_subjects.c.course_id, func.count()).group_by(_subjects.c.course_id)
                ).fetchall()
            )
        return [
            {
                "course_id": course.id,
                "code": course.code,
                "name": course.name,
                "student_count": students_per.get(course.id, 0),
                "subject_count": subjects_per.get(course.id, 0),
            }
            for course in self.list_courses()
        ]

    def get_enrollment_trends(self) -> list[dict]:
        """Return registrations per calendar month (YYYY-MM), oldest first."""
        month = func.substr(_students.c.created_at, 1, 7)
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(month.label("month"), func.count().label("n")).group_by(month).order_by(month)
            ).fetchall()
        return [{"month": r.month, "registrations": r.n} for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_student(row) -> Student:
    admission = {}
    for name in ADMISSION_FIELDS:
        value = getattr(row, name)
        if name in ADMISSION_INT_FIELDS:
            admission[name] = int(value or 0)
        else:
            admission[name] = value or ""
    return Student(
        id=row.id,
        user_id=row.user_id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        student_number=row.student_number,
        course_id=row.course_id,
        year_level=row.year_level,
        status=row.status,
        section=row.section,
        avatar=row.avatar,
        created_at=row.created_at,
        admission=AdmissionRecord(**admission),
    )


def _row_to_course(row) -> Course:
    return Course(id=row.id, code=row.code, name=row.name, description=row.description or "")


def _row_to_subject(row) -> Subject:
    return Subject(
        id=row.id,
        code=row.code,
        name=row.name,
        units=row.units,
        schedule=row.schedule or "",
        instructor=row.instructor or "",
        course_id=row.course_id,
        year_level=row.year_level,
    )


def _row_to_enrollment(row) -> Enrollment:
    return Enrollment(id=row.id, student_id=row.student_id, subject_id=row.subject_id, status=row.status)


def _row_to_notification(row) -> Notification:
    return Notification(
        id=row.id,
        type=row.type,
        subject=row.subject,
        message=row.message,
        status=row.status,
        sent_by=row.sent_by,
        recipient_count=row.recipient_count,
        sent_at=row.sent_at,
    )


